from datetime import timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from marketplace.core.context import RequestContext
from marketplace.core.dependencies import get_audit_sink
from marketplace.core.security import create_access_token
from marketplace.database import Base, configure_sqlite_locking, get_db
from marketplace.main import app
from marketplace.models import (
    Booking, BookingStatus, PaymentStatus, PaymentType, Service, ServiceAddon,
    ServiceProvider, Tenant, User, UserRole, generate_id
)
from marketplace.services.audit_service import AuditLogService


def make_engine(path, **connect_args):
    connect_args.setdefault("check_same_thread", False)
    return configure_sqlite_locking(create_engine(f"sqlite:///{path}", connect_args=connect_args))


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "marketplace.db"


@pytest.fixture
def engine(db_path):
    engine = make_engine(db_path)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def open_engine():
    """Open extra engines (other files, other lock timeouts) disposed after the test."""
    engines = []

    def _open(path, **connect_args):
        engines.append(make_engine(path, **connect_args))
        return engines[-1]

    yield _open
    for extra in engines:
        extra.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def audit_sink(session_factory):
    return AuditLogService(session_factory, max_attempts=2, backoff_seconds=0)


@pytest.fixture
def marketplace(session_factory):
    """One tenant with two providers, a customer, an admin and a priced catalogue."""
    ids = SimpleNamespace(
        tenant_id=generate_id(),
        other_tenant_id=generate_id(),
        customer_id=generate_id(),
        other_customer_id=generate_id(),
        admin_id=generate_id(),
        provider_user_id=generate_id(),
        provider_id=generate_id(),
        other_provider_user_id=generate_id(),
        other_provider_id=generate_id(),
        service_id=generate_id(),
        untimed_service_id=generate_id(),
        inactive_service_id=generate_id(),
        other_service_id=generate_id(),
        addon_10_id=generate_id(),
        addon_15_id=generate_id(),
        foreign_addon_id=generate_id(),
        outsider_id=generate_id(),
    )

    with session_factory() as db:
        db.add_all([
            Tenant(id=ids.tenant_id, name="Riyadh Home Services", slug="riyadh"),
            Tenant(id=ids.other_tenant_id, name="Jeddah Home Services", slug="jeddah"),
        ])
        db.flush()
        db.add_all([
            User(id=ids.customer_id, tenant_id=ids.tenant_id, email="sara@example.com", role=UserRole.CUSTOMER),
            User(id=ids.other_customer_id, tenant_id=ids.tenant_id, email="omar@example.com", role=UserRole.CUSTOMER),
            User(id=ids.admin_id, tenant_id=ids.tenant_id, email="admin@example.com", role=UserRole.ADMIN),
            User(id=ids.provider_user_id, tenant_id=ids.tenant_id, email="clean@example.com", role=UserRole.PROVIDER),
            User(id=ids.other_provider_user_id, tenant_id=ids.tenant_id, email="fix@example.com", role=UserRole.PROVIDER),
            User(id=ids.outsider_id, tenant_id=ids.other_tenant_id, email="sara@example.com", role=UserRole.CUSTOMER),
        ])
        db.flush()
        db.add_all([
            ServiceProvider(id=ids.provider_id, tenant_id=ids.tenant_id, user_id=ids.provider_user_id,
                            business_name="Sparkle Cleaning", commission_rate=15.0),
            ServiceProvider(id=ids.other_provider_id, tenant_id=ids.tenant_id, user_id=ids.other_provider_user_id,
                            business_name="Fix It Fast", commission_rate=20.0),
        ])
        db.flush()
        db.add_all([
            Service(id=ids.service_id, tenant_id=ids.tenant_id, provider_id=ids.provider_id,
                    name="Deep Cleaning", base_price=100.0, currency="SAR", duration_minutes=60),
            Service(id=ids.untimed_service_id, tenant_id=ids.tenant_id, provider_id=ids.provider_id,
                    name="Window Cleaning", base_price=40.0, currency="SAR", duration_minutes=None),
            Service(id=ids.inactive_service_id, tenant_id=ids.tenant_id, provider_id=ids.provider_id,
                    name="Carpet Cleaning", base_price=80.0, currency="SAR", duration_minutes=90, is_active=False),
            Service(id=ids.other_service_id, tenant_id=ids.tenant_id, provider_id=ids.other_provider_id,
                    name="Plumbing Visit", base_price=150.0, currency="SAR", duration_minutes=30),
        ])
        db.flush()
        db.add_all([
            ServiceAddon(id=ids.addon_10_id, service_id=ids.service_id, name="Fridge interior", price=10.0),
            ServiceAddon(id=ids.addon_15_id, service_id=ids.service_id, name="Oven degreasing", price=15.0),
            ServiceAddon(id=ids.foreign_addon_id, service_id=ids.other_service_id, name="Spare parts", price=50.0),
        ])
        db.commit()

    return ids


@pytest.fixture
def make_booking(session_factory, marketplace):
    """Insert an existing booking directly, bypassing the reservation flow."""
    def _make(scheduled_at, duration_minutes=60, status=BookingStatus.CONFIRMED,
              provider_id=None, service_id=None, customer_id=None,
              payment_type=PaymentType.INSTANT, payment_status=PaymentStatus.PENDING):
        booking_id = generate_id()
        with session_factory() as db:
            db.add(Booking(
                id=booking_id,
                tenant_id=marketplace.tenant_id,
                customer_id=customer_id or marketplace.other_customer_id,
                provider_id=provider_id or marketplace.provider_id,
                service_id=service_id or marketplace.service_id,
                status=status,
                scheduled_at=scheduled_at,
                ends_at=scheduled_at + timedelta(minutes=duration_minutes),
                duration_minutes=duration_minutes,
                total_amount=100.0,
                commission_amount=15.0,
                currency="SAR",
                payment_status=payment_status,
                payment_type=payment_type,
            ))
            db.commit()
        return booking_id
    return _make


@pytest.fixture
def context_for(marketplace):
    def _context(user_id=None, role=UserRole.CUSTOMER, tenant_id=None):
        return RequestContext(
            tenant_id=tenant_id or marketplace.tenant_id,
            user_id=user_id or marketplace.customer_id,
            role=role,
            ip_address="10.0.0.7",
            user_agent="pytest",
        )
    return _context


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_sink] = lambda: AuditLogService(session_factory, backoff_seconds=0)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(marketplace):
    def _headers(user_id, role, tenant_id=None):
        token = create_access_token({
            "user_id": user_id,
            "tenant_id": tenant_id or marketplace.tenant_id,
            "role": role.value,
        })
        return {"Authorization": f"Bearer {token}"}
    return _headers
