import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import Conflict, InvalidRequest
from models import Booking

logger = logging.getLogger(__name__)

# ================== SLOT CATALOG ==================
SLOT_CATALOG = (
    "10:00 AM",
    "12:00 PM",
    "2:00 PM",
    "4:00 PM",
    "6:00 PM",
    "8:00 PM",
    "10:00 PM",
)

UNIQUE_VIOLATION_PGCODE = "23505"


def normalize_date(value) -> date:
    """Reduce a date, datetime or ISO string to its calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequest("Invalid date")

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        raise InvalidRequest(f"Invalid date: {value}")


def is_duplicate_key(exc: IntegrityError) -> bool:
    orig = exc.orig
    if getattr(orig, "pgcode", None) == UNIQUE_VIOLATION_PGCODE:
        return True
    message = str(orig).lower()
    return "unique" in message or "duplicate" in message


def is_slot_taken(db: Session, day, time: str) -> bool:
    day = normalize_date(day)
    existing = db.query(Booking.id).filter(
        Booking.date == day,
        Booking.time == time,
    ).first()
    return existing is not None


def insert_booking(db: Session, booking: Booking) -> Booking:
    """Insert a booking, relying on the (date, time) unique constraint."""
    db.add(booking)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if is_duplicate_key(e):
            logger.info("Slot %s %s taken by a concurrent booking", booking.date, booking.time)
            raise Conflict() from e
        raise
    db.refresh(booking)
    return booking


def reserve(db: Session, booking: Booking) -> Booking:
    booking.date = normalize_date(booking.date)
    if is_slot_taken(db, booking.date, booking.time):
        logger.info("Slot %s %s already booked", booking.date, booking.time)
        raise Conflict()
    return insert_booking(db, booking)


def available_slots(db: Session, day) -> list[str]:
    """Catalog labels not yet booked on the given day, in catalog order."""
    day = normalize_date(day)
    rows = db.query(Booking.time).filter(Booking.date == day).all()
    booked = {row.time for row in rows}
    return [slot for slot in SLOT_CATALOG if slot not in booked]
