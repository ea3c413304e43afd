import logging
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from marketplace.core.config import settings

logger = logging.getLogger(__name__)


def configure_sqlite_locking(engine):
    """Make every SQLite transaction take the write lock up front.

    SQLite has no SELECT ... FOR UPDATE, so BEGIN IMMEDIATE is what keeps two
    reservations for the same provider from interleaving. It applies to reads
    too: a request holds the database-wide write lock from its first query
    until its session closes, so requests run one at a time. Development and
    tests only; deployments use PostgreSQL row locks.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


database_url = settings.SQLALCHEMY_DATABASE_URL

if settings.IS_SQLITE:
    logger.warning("Development: using SQLite at %s; every transaction takes the database write lock", database_url)
    engine = configure_sqlite_locking(create_engine(
        database_url,
        echo=settings.DEBUG,
        connect_args={"check_same_thread": False},
    ))
else:
    logger.info("Production: using PostgreSQL")
    engine = create_engine(
        database_url,
        echo=settings.DEBUG,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
        # Lock waits beyond this fail the transaction instead of hanging the worker
        connect_args={"options": f"-c lock_timeout={settings.DB_LOCK_TIMEOUT_MS}"},
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
