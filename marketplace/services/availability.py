"""Provider timeline queries shared by reservations, confirmations and slot listing."""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.models.booking import Booking, BookingStatus
from marketplace.models.provider import ServiceProvider

# Bookings in these states never occupy a slot
RELEASED_STATUSES = (BookingStatus.CANCELLED, BookingStatus.REFUNDED)


def blocking_statuses() -> List[BookingStatus]:
    """Statuses whose bookings hold their slot on the provider's timeline."""
    released = set(RELEASED_STATUSES)
    if not settings.PENDING_BOOKINGS_HOLD_SLOT:
        released.add(BookingStatus.PENDING)
    return [status for status in BookingStatus if status not in released]


def provider_lock_query(db: Session, tenant_id: str, provider_id: str):
    return db.query(ServiceProvider.id).filter(
        ServiceProvider.id == provider_id,
        ServiceProvider.tenant_id == tenant_id,
    ).with_for_update()


def lock_provider(db: Session, tenant_id: str, provider_id: str) -> bool:
    """Take the provider row lock that serializes writes to its timeline.

    Held before the conflict re-check of any status change that makes a
    booking start blocking its slot (confirm, payment capture). Taken before
    the booking row lock so the order matches reservations.
    """
    return provider_lock_query(db, tenant_id, provider_id).first() is not None


def lock_timeline_of_booking(db: Session, tenant_id: str, booking_id: str) -> None:
    """Lock the provider owning ``booking_id``; a no-op when the booking does not exist."""
    provider_id = db.query(Booking.provider_id).filter(
        Booking.id == booking_id,
        Booking.tenant_id == tenant_id,
    ).scalar()
    if provider_id is not None:
        lock_provider(db, tenant_id, provider_id)


def _timeline_query(db: Session, tenant_id: str, provider_id: str, starts_at: datetime, ends_at: datetime):
    return db.query(Booking).filter(
        Booking.tenant_id == tenant_id,
        Booking.provider_id == provider_id,
        Booking.status.in_(blocking_statuses()),
        Booking.scheduled_at < ends_at,
        Booking.ends_at > starts_at,
    )


def find_conflicting_bookings(
    db: Session,
    tenant_id: str,
    provider_id: str,
    starts_at: datetime,
    ends_at: datetime,
    *,
    exclude_booking_id: Optional[str] = None,
) -> List[str]:
    """Lock and return ids of bookings overlapping ``[starts_at, ends_at)``.

    Must run inside the caller's transaction; the row locks are held until it
    commits or rolls back.
    """
    query = _timeline_query(db, tenant_id, provider_id, starts_at, ends_at)
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)

    rows = query.with_entities(Booking.id).with_for_update().all()
    return [row.id for row in rows]


def busy_intervals(
    db: Session,
    tenant_id: str,
    provider_id: str,
    starts_at: datetime,
    ends_at: datetime,
) -> List[Tuple[datetime, datetime]]:
    """Non-locking read of occupied intervals that touch the given window."""
    rows = (
        _timeline_query(db, tenant_id, provider_id, starts_at, ends_at)
        .with_entities(Booking.scheduled_at, Booking.ends_at)
        .order_by(Booking.scheduled_at)
        .all()
    )
    return [(row.scheduled_at, row.ends_at) for row in rows]
