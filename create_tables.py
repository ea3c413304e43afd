import logging
import os
import sys

from sqlalchemy.exc import SQLAlchemyError

# Add the current directory to sys.path so we can import from marketplace
sys.path.append(os.getcwd())

from marketplace.database import engine, Base
# Import all models to ensure they are registered with Base.metadata
from marketplace.models import (  # noqa: F401
    Tenant, User, ServiceProvider, Service, ServiceAddon,
    Booking, BookingAddon, Payment, AuditLog
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("create_tables")

def create_tables():
    logger.info("Creating tables in database...")
    try:
        # This checks the DB and creates any missing tables defined in the models
        Base.metadata.create_all(bind=engine)
        logger.info("Tables created successfully")
    except SQLAlchemyError:
        logger.exception("Error creating tables")
        raise

if __name__ == "__main__":
    create_tables()
