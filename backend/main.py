import logging
import re
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Depends, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from booking import (
    ReceiptFile,
    create_booking,
    get_booking,
    list_bookings,
    list_user_bookings,
    parse_booking_request,
)
from config import settings
from database import Base, engine, get_db
from errors import BookingError, InvalidFile
from pricing import booking_type_catalog
from schemas import BookingOut
from services.email_service import send_booking_notifications
from services.storage_service import ReceiptStorage
from slots import available_slots

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ================== CONFIG ==================
MAX_UPLOAD_SIZE = 5 * 1024 * 1024  # 5MB at the transport boundary
RECEIPT_TYPE_PATTERN = re.compile(r"(jpg|jpeg|png|gif|pdf)")

# ================== DATABASE ==================
Base.metadata.create_all(engine)

# ================== APP ==================
app = FastAPI(title="Church Theater Booking API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def get_storage():
    if not (settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY):
        return None
    return ReceiptStorage.from_settings(settings)


async def read_receipt(receipt: Optional[UploadFile]) -> Optional[ReceiptFile]:
    if receipt is None or not receipt.filename:
        return None
    data = await receipt.read()
    if len(data) > MAX_UPLOAD_SIZE:
        raise InvalidFile("File size exceeds 5MB limit")
    content_type = receipt.content_type or ""
    if not RECEIPT_TYPE_PATTERN.search(content_type):
        raise InvalidFile("File type not supported. Please use JPG, PNG, GIF, or PDF")
    return ReceiptFile(data=data, filename=receipt.filename, content_type=content_type)


# ================== API ==================
@app.get("/")
def health():
    return {"status": "ok", "time": datetime.now().isoformat()}


@app.get("/booking-types")
def get_booking_types():
    return booking_type_catalog()


@app.post("/bookings", response_model=BookingOut, status_code=201)
async def book(
    name: str = Form(""),
    email: str = Form(""),
    phone: str = Form(""),
    bookingType: str = Form(""),
    price: str = Form(""),
    date: str = Form(""),
    time: Optional[str] = Form(None),
    timeFrom: Optional[str] = Form(None),
    timeTo: Optional[str] = Form(None),
    reason: Optional[str] = Form(None),
    receipt: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    storage: Optional[ReceiptStorage] = Depends(get_storage),
):
    receipt_file = await read_receipt(receipt)
    request = parse_booking_request(
        name=name,
        email=email,
        phone=phone,
        booking_type=bookingType,
        price=price,
        date=date,
        time=time,
        time_from=timeFrom,
        time_to=timeTo,
        reason=reason,
    )
    booking = await create_booking(db, request, receipt=receipt_file, storage=storage)
    await send_booking_notifications(booking)
    return BookingOut.from_booking(booking)


@app.get("/bookings", response_model=list[BookingOut])
def all_bookings(locale: Optional[str] = None, db: Session = Depends(get_db)):
    return [BookingOut.from_booking(b, locale) for b in list_bookings(db)]


@app.get("/bookings/available-times", response_model=list[str])
def available_times(date: str, db: Session = Depends(get_db)):
    return available_slots(db, date)


@app.get("/bookings/user/{email}", response_model=list[BookingOut])
def user_bookings(email: str, locale: Optional[str] = None, db: Session = Depends(get_db)):
    return [BookingOut.from_booking(b, locale) for b in list_user_bookings(db, email)]


@app.get("/bookings/{booking_id}", response_model=BookingOut)
def booking_by_id(booking_id: str, locale: Optional[str] = None, db: Session = Depends(get_db)):
    return BookingOut.from_booking(get_booking(db, booking_id), locale)


def run():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
