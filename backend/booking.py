import logging
from typing import NamedTuple, Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from config import settings
from errors import Conflict, InvalidRequest, NotFound, UploadError
from models import Booking, User
from pricing import compute_price, format_time_range, translate_booking_type
from schemas import BookingRequest
from services.storage_service import NOT_CONFIGURED
from slots import insert_booking, is_duplicate_key, is_slot_taken, normalize_date

logger = logging.getLogger(__name__)


class ReceiptFile(NamedTuple):
    data: bytes
    filename: Optional[str]
    content_type: str


REQUIRED_FIELDS = ("name", "email", "phone", "booking_type", "date")


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_booking_request(**fields) -> BookingRequest:
    has_range = not _blank(fields.get("time_from")) or not _blank(fields.get("time_to"))
    if any(_blank(fields.get(name)) for name in REQUIRED_FIELDS) or (
        _blank(fields.get("time")) and not has_range
    ):
        raise InvalidRequest("Missing required fields")

    try:
        return BookingRequest(**fields)
    except ValidationError as e:
        errors = e.errors()
        field = errors[0]["loc"][0] if errors and errors[0]["loc"] else None
        if field == "price":
            raise InvalidRequest("Invalid price") from e
        if field == "email" and fields.get("email"):
            raise InvalidRequest("Invalid email") from e
        raise InvalidRequest("Missing required fields") from e


def resolve_time_and_price(request: BookingRequest) -> BookingRequest:
    """Check a from/to range against the price and fill in the composite time label."""
    if request.time_from or request.time_to:
        if not (request.time_from and request.time_to):
            raise InvalidRequest("Please select valid time slots")
        price = compute_price(request.booking_type, request.time_from, request.time_to)
        if price == 0:
            raise InvalidRequest("Please select valid time slots")
        if price != request.price:
            raise InvalidRequest("Invalid price")
        time_range = format_time_range(request.time_from, request.time_to)
        if request.time is not None and request.time != time_range:
            raise InvalidRequest("Time does not match the selected time slots")
        request.time = time_range

    if not request.time:
        raise InvalidRequest("Missing required fields")
    return request


def upsert_user(db: Session, name: str, email: str, phone: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        user = User(name=name, email=email, phone=phone)
        db.add(user)
        try:
            db.commit()
        except IntegrityError as e:
            # another request created the same email first
            db.rollback()
            if not is_duplicate_key(e):
                raise
            user = db.query(User).filter(User.email == email).one()
        else:
            db.refresh(user)
            logger.debug("Created user %s for %s", user.id, email)
            return user

    user.name = name
    user.phone = phone
    db.commit()
    db.refresh(user)
    logger.debug("Updated user %s", user.id)
    return user


async def _discard_receipt(storage, path: str):
    try:
        await storage.delete(path)
        logger.info("Deleted orphaned receipt %s", path)
    except Exception:
        logger.exception("Failed to delete orphaned receipt %s", path)


async def create_booking(
    db: Session,
    request: BookingRequest,
    receipt: Optional[ReceiptFile] = None,
    storage=None,
) -> Booking:
    request = resolve_time_and_price(request)
    day = normalize_date(request.date)

    if is_slot_taken(db, day, request.time):
        logger.info("Slot %s %s already booked", day, request.time)
        raise Conflict()

    user = upsert_user(db, request.name, request.email, request.phone)
    type_ar, type_en = translate_booking_type(request.booking_type)

    uploaded = None
    if receipt is not None:
        if storage is None:
            raise UploadError(NOT_CONFIGURED)
        uploaded = await storage.upload_receipt(
            receipt.data, receipt.filename, receipt.content_type, user.id
        )

    booking = Booking(
        user_id=user.id,
        type_ar=type_ar,
        type_en=type_en,
        price=request.price,
        reason_ar=request.reason,
        reason_en=request.reason,
        date=day,
        time=request.time,
        receipt_url=uploaded.url if uploaded else None,
    )
    try:
        insert_booking(db, booking)
    except Conflict:
        if uploaded and settings.DELETE_ORPHANED_RECEIPTS:
            await _discard_receipt(storage, uploaded.path)
        raise

    logger.info("Booking %s created for %s on %s %s", booking.id, user.email, day, booking.time)
    return booking


# ================== QUERIES ==================
def list_bookings(db: Session) -> list[Booking]:
    return db.query(Booking).options(joinedload(Booking.user)).order_by(Booking.date.asc()).all()


def get_booking(db: Session, booking_id: str) -> Booking:
    booking = db.query(Booking).options(joinedload(Booking.user)).filter(Booking.id == booking_id).first()
    if booking is None:
        raise NotFound(f"Booking with ID {booking_id} not found")
    return booking


def list_user_bookings(db: Session, email: str) -> list[Booking]:
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        return []
    return (
        db.query(Booking)
        .options(joinedload(Booking.user))
        .filter(Booking.user_id == user.id)
        .order_by(Booking.date.asc())
        .all()
    )
