import json
import threading
from datetime import datetime

import pytest
from fastapi import BackgroundTasks
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from marketplace.core.config import settings
from marketplace.core.errors import ErrorKind
from marketplace.models import (
    AuditLog, Booking, BookingAddon, BookingStatus, PaymentStatus, PaymentType, Service, ServiceAddon
)
from marketplace.services import audit_service, reservation_service
from marketplace.services.audit_service import AuditEntry, AuditLogService, emit_quietly
from marketplace.services.reservation_service import ReservationRequest, ReservationService


def request_for(marketplace, scheduled_at="2024-01-10T09:00:00", **overrides):
    fields = dict(
        service_id=marketplace.service_id,
        provider_id=marketplace.provider_id,
        scheduled_at=scheduled_at,
        payment_type="instant",
    )
    fields.update(overrides)
    return ReservationRequest(**fields)


def reserve(session_factory, context, request, audit_sink=None):
    with session_factory() as db:
        return ReservationService.reserve(db, context, request, audit_sink)


def booking_count(session_factory):
    with session_factory() as db:
        return db.query(Booking).count(), db.query(BookingAddon).count()


def test_creates_pending_booking_with_snapshot_fields(session_factory, marketplace, context_for):
    outcome = reserve(session_factory, context_for(), request_for(
        marketplace,
        scheduled_at="2024-01-10T09:00:00.000Z",
        customer_address={"city": "Riyadh", "street": "King Fahd Rd"},
        notes="Gate code 4411",
        payment_type="cash_on_delivery",
    ))

    assert outcome.ok
    with session_factory() as db:
        booking = db.query(Booking).filter(Booking.id == outcome.value.booking_id).one()
        assert booking.status == BookingStatus.PENDING
        assert booking.payment_status == PaymentStatus.PENDING
        assert booking.payment_type == PaymentType.CASH_ON_DELIVERY
        assert booking.tenant_id == marketplace.tenant_id
        assert booking.customer_id == marketplace.customer_id
        assert booking.scheduled_at == datetime(2024, 1, 10, 9, 0, 0)
        assert booking.ends_at == datetime(2024, 1, 10, 10, 0, 0)
        assert booking.duration_minutes == 60
        assert booking.currency == "SAR"
        assert booking.booking_type == "one_time"
        assert json.loads(booking.customer_address) == {"city": "Riyadh", "street": "King Fahd Rd"}
        assert booking.notes == "Gate code 4411"


def test_pricing_includes_addons_and_commission(session_factory, marketplace, context_for):
    outcome = reserve(session_factory, context_for(), request_for(
        marketplace, addons=[marketplace.addon_10_id, marketplace.addon_15_id]
    ))

    assert outcome.ok
    assert outcome.value.total_amount == pytest.approx(125.00, abs=0.01)
    assert outcome.value.commission_amount == pytest.approx(18.75, abs=0.01)

    with session_factory() as db:
        booking = db.query(Booking).one()
        assert booking.total_amount == pytest.approx(125.00, abs=0.01)
        assert booking.commission_amount == pytest.approx(18.75, abs=0.01)
        prices = sorted(item.price for item in db.query(BookingAddon).filter(BookingAddon.booking_id == booking.id))
        assert prices == [10.0, 15.0]


def test_unknown_and_foreign_addons_are_ignored(session_factory, marketplace, context_for):
    outcome = reserve(session_factory, context_for(), request_for(
        marketplace,
        addons=[marketplace.addon_10_id, "no-such-addon", marketplace.foreign_addon_id, marketplace.addon_10_id],
    ))

    assert outcome.ok
    assert outcome.value.total_amount == pytest.approx(110.0)
    assert booking_count(session_factory) == (1, 1)


def test_addon_price_is_snapshotted(session_factory, marketplace, context_for):

    outcome = reserve(session_factory, context_for(), request_for(marketplace, addons=[marketplace.addon_15_id]))
    with session_factory() as db:
        db.query(ServiceAddon).filter(ServiceAddon.id == marketplace.addon_15_id).update({"price": 99.0})
        db.commit()

    with session_factory() as db:
        item = db.query(BookingAddon).filter(BookingAddon.booking_id == outcome.value.booking_id).one()
        assert item.price == 15.0


def test_missing_duration_defaults_to_an_hour(session_factory, marketplace, context_for):
    outcome = reserve(session_factory, context_for(), request_for(
        marketplace, service_id=marketplace.untimed_service_id, scheduled_at="2024-01-10 14:00"
    ))

    assert outcome.ok
    with session_factory() as db:
        booking = db.query(Booking).one()
        assert booking.duration_minutes == 60
        assert booking.ends_at == datetime(2024, 1, 10, 15, 0)


@pytest.mark.parametrize("payment_type", ["bitcoin", "card", "CASH"])
def test_rejects_unknown_payment_type(session_factory, marketplace, context_for, payment_type):
    outcome = reserve(session_factory, context_for(), request_for(marketplace, payment_type=payment_type))

    assert outcome.error.kind == ErrorKind.VALIDATION
    assert booking_count(session_factory) == (0, 0)


def test_omitted_payment_type_defaults_to_instant(session_factory, marketplace, context_for):
    outcome = reserve(session_factory, context_for(), request_for(marketplace, payment_type=None))

    assert outcome.ok
    with session_factory() as db:
        assert db.query(Booking).one().payment_type == PaymentType.INSTANT


@pytest.mark.parametrize("missing", ["service_id", "provider_id", "scheduled_at"])
def test_requires_service_provider_and_time(session_factory, marketplace, context_for, missing):
    outcome = reserve(session_factory, context_for(), request_for(marketplace, **{missing: None}))

    assert outcome.error.kind == ErrorKind.VALIDATION
    assert "required" in outcome.error.message
    assert booking_count(session_factory) == (0, 0)


def test_rejects_unparsable_time(session_factory, marketplace, context_for):
    outcome = reserve(session_factory, context_for(), request_for(marketplace, scheduled_at="next tuesday"))

    assert outcome.error.kind == ErrorKind.VALIDATION


def test_service_of_another_provider_is_not_found(session_factory, marketplace, context_for):
    outcome = reserve(session_factory, context_for(), request_for(
        marketplace, service_id=marketplace.other_service_id, provider_id=marketplace.provider_id
    ))

    assert outcome.error.kind == ErrorKind.NOT_FOUND
    assert booking_count(session_factory) == (0, 0)


def test_inactive_service_is_not_found(session_factory, marketplace, context_for):
    outcome = reserve(session_factory, context_for(), request_for(marketplace, service_id=marketplace.inactive_service_id))

    assert outcome.error.kind == ErrorKind.NOT_FOUND


def test_service_in_another_tenant_is_not_found(session_factory, marketplace, context_for):
    context = context_for(user_id=marketplace.outsider_id, tenant_id=marketplace.other_tenant_id)
    outcome = reserve(session_factory, context, request_for(marketplace))

    assert outcome.error.kind == ErrorKind.NOT_FOUND


def test_overlapping_request_conflicts(session_factory, marketplace, context_for, make_booking):
    make_booking(datetime(2024, 1, 10, 9, 0))

    outcome = reserve(session_factory, context_for(), request_for(marketplace, scheduled_at="2024-01-10T09:30:00"))

    assert outcome.error.kind == ErrorKind.CONFLICT
    assert outcome.error.message == "Selected time slot is not available"
    assert booking_count(session_factory) == (1, 0)


def test_adjacent_request_succeeds(session_factory, marketplace, context_for, make_booking):
    make_booking(datetime(2024, 1, 10, 9, 0))

    outcome = reserve(session_factory, context_for(), request_for(marketplace, scheduled_at="2024-01-10T10:00:00"))

    assert outcome.ok


@pytest.mark.parametrize("scheduled_at, duration, expected", [
    ("2024-01-10T08:00:00", 60, None),          # ends exactly when the existing one starts
    ("2024-01-10T10:00:00", 60, None),          # starts exactly when the existing one ends
    ("2024-01-10T09:00:00", 60, ErrorKind.CONFLICT),  # equal
    ("2024-01-10T09:15:00", 30, ErrorKind.CONFLICT),  # contained
    ("2024-01-10T08:30:00", 60, ErrorKind.CONFLICT),  # overlaps the start
    ("2024-01-10T08:00:00", 180, ErrorKind.CONFLICT),  # contains the existing one
])
def test_interval_semantics(session_factory, marketplace, context_for, make_booking, scheduled_at, duration, expected):

    make_booking(datetime(2024, 1, 10, 9, 0))
    with session_factory() as db:
        db.query(Service).filter(Service.id == marketplace.service_id).update({"duration_minutes": duration})
        db.commit()

    outcome = reserve(session_factory, context_for(), request_for(marketplace, scheduled_at=scheduled_at))

    if expected is None:
        assert outcome.ok
    else:
        assert outcome.error.kind == expected


@pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.REFUNDED])
def test_released_bookings_do_not_block(session_factory, marketplace, context_for, make_booking, status):
    make_booking(datetime(2024, 1, 10, 9, 0), status=status)

    outcome = reserve(session_factory, context_for(), request_for(marketplace))

    assert outcome.ok


@pytest.mark.parametrize("status", [BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED])
def test_active_bookings_block(session_factory, marketplace, context_for, make_booking, status):
    make_booking(datetime(2024, 1, 10, 9, 0), status=status)

    outcome = reserve(session_factory, context_for(), request_for(marketplace))

    assert outcome.error.kind == ErrorKind.CONFLICT


def test_pending_booking_holds_slot_by_default(session_factory, marketplace, context_for, make_booking):
    make_booking(datetime(2024, 1, 10, 9, 0), status=BookingStatus.PENDING)

    outcome = reserve(session_factory, context_for(), request_for(marketplace))

    assert outcome.error.kind == ErrorKind.CONFLICT


def test_pending_booking_can_be_released_by_setting(session_factory, marketplace, context_for, make_booking, monkeypatch):
    monkeypatch.setattr(settings, "PENDING_BOOKINGS_HOLD_SLOT", False)
    make_booking(datetime(2024, 1, 10, 9, 0), status=BookingStatus.PENDING)

    outcome = reserve(session_factory, context_for(), request_for(marketplace))

    assert outcome.ok


def test_other_providers_timeline_is_independent(session_factory, marketplace, context_for, make_booking):
    make_booking(datetime(2024, 1, 10, 9, 0))

    outcome = reserve(session_factory, context_for(), request_for(
        marketplace, service_id=marketplace.other_service_id, provider_id=marketplace.other_provider_id
    ))

    assert outcome.ok
    assert outcome.value.commission_amount == pytest.approx(30.0)


def test_booking_is_not_idempotent_outside_the_conflict_check(session_factory, marketplace, context_for):
    first = reserve(session_factory, context_for(), request_for(marketplace, scheduled_at="2024-01-10T09:00:00"))
    second = reserve(session_factory, context_for(), request_for(marketplace, scheduled_at="2024-01-10T11:00:00"))

    assert first.ok and second.ok
    assert first.value.booking_id != second.value.booking_id


def test_simultaneous_requests_for_the_same_slot(session_factory, marketplace, context_for):
    attempts = 4
    barrier = threading.Barrier(attempts)
    outcomes = []
    lock = threading.Lock()

    def attempt(index):
        barrier.wait()
        outcome = reserve(session_factory, context_for(), request_for(
            marketplace, scheduled_at=f"2024-01-10T09:{index * 10:02d}:00"
        ))
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt, args=(i,)) for i in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert len(outcomes) == attempts
    assert sum(1 for outcome in outcomes if outcome.ok) == 1
    assert all(outcome.error.kind == ErrorKind.CONFLICT for outcome in outcomes if not outcome.ok)
    assert booking_count(session_factory) == (1, 0)


def test_failure_after_locking_leaves_no_rows(session_factory, marketplace, context_for, monkeypatch):
    def broken_addon(**kwargs):
        raise OperationalError("INSERT INTO booking_addons", {}, Exception("disk I/O error"))

    monkeypatch.setattr(reservation_service, "BookingAddon", broken_addon)

    outcome = reserve(session_factory, context_for(), request_for(
        marketplace, addons=[marketplace.addon_10_id]
    ))

    assert outcome.error.kind == ErrorKind.INTERNAL
    assert "disk" not in outcome.error.message
    assert booking_count(session_factory) == (0, 0)


def test_lock_timeout_fails_cleanly(engine, db_path, open_engine, session_factory, marketplace, context_for):
    impatient = open_engine(db_path, timeout=0.2)
    blocker = engine.connect()
    blocker.begin()
    try:
        with sessionmaker(bind=impatient)() as db:
            outcome = ReservationService.reserve(db, context_for(), request_for(marketplace))
    finally:
        blocker.rollback()
        blocker.close()

    assert outcome.error.kind == ErrorKind.INTERNAL
    assert booking_count(session_factory) == (0, 0)


def test_audit_event_written_after_commit(session_factory, marketplace, context_for, audit_sink):
    outcome = reserve(session_factory, context_for(), request_for(
        marketplace, addons=[marketplace.addon_10_id], payment_type="cash_on_delivery"
    ), audit_sink)

    with session_factory() as db:
        entry = db.query(AuditLog).one()
        assert entry.action == "customer.booking.create"
        assert entry.resource_type == "booking"
        assert entry.resource_id == outcome.value.booking_id
        assert entry.tenant_id == marketplace.tenant_id
        assert entry.user_id == marketplace.customer_id
        assert entry.ip_address == "10.0.0.7"
        assert entry.changes == {
            "serviceId": marketplace.service_id,
            "providerId": marketplace.provider_id,
            "totalAmount": 110.0,
            "paymentType": "cash_on_delivery",
        }


def test_no_audit_event_for_rejected_request(session_factory, marketplace, context_for, audit_sink, make_booking):
    make_booking(datetime(2024, 1, 10, 9, 0))

    reserve(session_factory, context_for(), request_for(marketplace), audit_sink)

    with session_factory() as db:
        assert db.query(AuditLog).count() == 0


def test_raising_audit_sink_does_not_undo_booking(session_factory, marketplace, context_for):
    class ExplodingSink:
        def emit(self, entry):
            raise RuntimeError("audit backend down")

    outcome = reserve(session_factory, context_for(), request_for(marketplace), ExplodingSink())

    assert outcome.ok
    assert booking_count(session_factory) == (1, 0)


def test_unwritable_audit_store_does_not_undo_booking(session_factory, marketplace, context_for, tmp_path, open_engine, caplog):
    # A database without the audit_logs table makes every write fail
    empty = open_engine(tmp_path / "empty.db")
    sink = AuditLogService(sessionmaker(bind=empty), max_attempts=2, backoff_seconds=0)

    with caplog.at_level("WARNING"):
        outcome = reserve(session_factory, context_for(), request_for(marketplace), sink)

    assert outcome.ok
    assert booking_count(session_factory) == (1, 0)
    assert "Dropping audit log entry customer.booking.create" in caplog.text


def test_read_transaction_holds_the_sqlite_write_lock(db_path, open_engine, session_factory, marketplace, context_for):
    impatient = open_engine(db_path, timeout=0.2)
    with session_factory() as reader:
        reader.query(Booking).count()
        with sessionmaker(bind=impatient)() as db:
            outcome = ReservationService.reserve(db, context_for(), request_for(marketplace))

    assert outcome.error.kind == ErrorKind.INTERNAL
    assert booking_count(session_factory) == (0, 0)


def test_audit_write_is_queued_behind_the_response(session_factory, marketplace, context_for, audit_sink):
    background_tasks = BackgroundTasks()

    with session_factory() as db:
        outcome = ReservationService.reserve(
            db, context_for(), request_for(marketplace), audit_sink, background_tasks
        )

    assert outcome.ok
    [task] = background_tasks.tasks
    assert task.func is emit_quietly
    with session_factory() as db:
        assert db.query(AuditLog).count() == 0

    task.func(*task.args, **task.kwargs)

    with session_factory() as db:
        assert db.query(AuditLog).one().resource_id == outcome.value.booking_id


def test_audit_retries_back_off(tmp_path, open_engine, marketplace, monkeypatch):
    sleeps = []
    monkeypatch.setattr(audit_service.time, "sleep", sleeps.append)
    empty = open_engine(tmp_path / "empty.db")
    sink = AuditLogService(sessionmaker(bind=empty), max_attempts=3, backoff_seconds=0.5)

    written = sink.emit(AuditEntry(
        tenant_id=marketplace.tenant_id, user_id=None, action="customer.booking.create",
        resource_type="booking", resource_id="b-1",
    ))

    assert written is False
    assert sleeps == [0.5, 1.0]
