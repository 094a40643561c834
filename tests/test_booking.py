import asyncio

import pytest

import booking as booking_module
import slots
from booking import (
    ReceiptFile,
    create_booking,
    get_booking,
    list_bookings,
    list_user_bookings,
    parse_booking_request,
    upsert_user,
)
from errors import Conflict, InvalidFile, InvalidRequest, NotFound, UploadError
from models import Booking, User

PNG = ReceiptFile(data=b"\x89PNG receipt", filename="receipt.png", content_type="image/png")


def request(**overrides):
    fields = {
        "name": "Mina",
        "email": "mina@test.com",
        "phone": "0100",
        "booking_type": "rehearsals",
        "price": "150",
        "date": "2025-06-01",
        "time_from": "10:00 AM",
        "time_to": "1:00 PM",
        "reason": "Choir practice",
    }
    fields.update(overrides)
    return parse_booking_request(**fields)


def book(db, req, **kwargs):
    return asyncio.run(create_booking(db, req, **kwargs))


# ------------------ validation ------------------
@pytest.mark.parametrize("field", ["name", "email", "phone", "booking_type", "date"])
def test_missing_fields(field):
    with pytest.raises(InvalidRequest, match="Missing required fields"):
        request(**{field: ""})


@pytest.mark.parametrize("price", ["0", "-10", "abc", "nan", "inf", ""])
def test_invalid_price(price):
    with pytest.raises(InvalidRequest, match="Invalid price"):
        request(price=price)


def test_invalid_email():
    with pytest.raises(InvalidRequest, match="Invalid email"):
        request(email="not-an-email")


def test_invalid_range_rejected(db):
    with pytest.raises(InvalidRequest, match="valid time slots"):
        book(db, request(time_from="1:00 PM", time_to="10:00 AM"))
    with pytest.raises(InvalidRequest, match="valid time slots"):
        book(db, request(booking_type="events", time_from="10:00 AM", time_to="6:00 PM", price="300"))
    assert db.query(User).count() == 0


def test_price_must_match_range(db):
    with pytest.raises(InvalidRequest, match="Invalid price"):
        book(db, request(price="100"))


def test_time_required_without_range(db):
    with pytest.raises(InvalidRequest):
        book(db, request(time_from=None, time_to=None, time=None))


def test_missing_fields_reported_before_price():
    with pytest.raises(InvalidRequest, match="Missing required fields"):
        request(date="", price="abc")
    with pytest.raises(InvalidRequest, match="Missing required fields"):
        request(time=None, time_from=None, time_to=None, price="0")


def test_time_must_match_priced_range(db):
    with pytest.raises(InvalidRequest, match="does not match"):
        book(db, request(time_from="10:00 AM", time_to="11:00 AM", price="50", time="6:00 PM - 10:00 PM"))
    assert db.query(Booking).count() == 0


def test_matching_time_is_accepted(db):
    created = book(db, request(time="10:00 AM - 1:00 PM"))
    assert created.time == "10:00 AM - 1:00 PM"


# ------------------ creation ------------------
def test_create_range_booking(db):
    created = book(db, request())

    assert created.time == "10:00 AM - 1:00 PM"
    assert float(created.price) == 150
    assert created.type_en == "rehearsals"
    assert created.reason_ar == created.reason_en == "Choir practice"
    assert created.receipt_url is None
    assert created.user.email == "mina@test.com"


def test_create_legacy_slot_booking(db):
    created = book(db, request(
        booking_type="vip", price="500", time="10:00 AM", time_from=None, time_to=None, reason="",
    ))

    assert created.time == "10:00 AM"
    assert created.type_en == "VIP Theater Package"
    assert created.type_ar == "باقة المسرح VIP"
    assert created.reason_en is None


def test_same_slot_conflicts_for_other_user(db):
    book(db, request(time="10:00 AM", time_from=None, time_to=None))

    with pytest.raises(Conflict):
        book(db, request(email="other@test.com", time="10:00 AM", time_from=None, time_to=None))

    assert db.query(Booking).count() == 1
    # conflict detected before the user upsert
    assert db.query(User).filter(User.email == "other@test.com").first() is None


def test_user_upsert_is_idempotent(db):
    book(db, request(date="2025-06-01"))
    book(db, request(date="2025-06-02", name="Mina G.", phone="0111"))

    users = db.query(User).all()
    assert len(users) == 1
    assert users[0].name == "Mina G."
    assert users[0].phone == "0111"
    assert len(users[0].bookings) == 2


def test_user_created_concurrently_is_updated(db, session_factory, monkeypatch):
    original_add = db.add

    def add_after_competitor(obj):
        if isinstance(obj, User):
            # another request inserts the same email between lookup and insert
            other = session_factory()
            other.add(User(name="Racer", email=obj.email, phone="0999"))
            other.commit()
            other.close()
        original_add(obj)

    monkeypatch.setattr(db, "add", add_after_competitor)
    user = upsert_user(db, "Mina", "mina@test.com", "0100")

    users = db.query(User).all()
    assert len(users) == 1
    assert users[0].id == user.id
    assert users[0].name == "Mina"
    assert users[0].phone == "0100"


# ------------------ receipts ------------------
def test_receipt_upload(db, supabase):
    created = book(db, request(), receipt=PNG, storage=supabase.receipt_storage())

    user = db.query(User).one()
    assert created.receipt_url == (
        f"https://theater.supabase.co/storage/v1/object/public/booking/receipts/{user.id}-1717200000000.png"
    )


def test_receipt_retry_uses_renamed_key(db, make_supabase):
    supabase = make_supabase(["timeout", "exists", "ok"])
    created = book(db, request(), receipt=PNG, storage=supabase.receipt_storage())

    user = db.query(User).one()
    assert created.receipt_url.endswith(f"/receipts/{user.id}-1717200000000-2.png")
    assert supabase.sleeps == [2]


def test_upload_failure_aborts_booking(db, make_supabase):
    supabase = make_supabase(["error", "error", "error"])
    with pytest.raises(UploadError):
        book(db, request(), receipt=PNG, storage=supabase.receipt_storage())

    assert db.query(Booking).count() == 0


def test_invalid_receipt_makes_no_call(db, supabase):
    text = ReceiptFile(data=b"hello", filename="notes.txt", content_type="text/plain")
    with pytest.raises(InvalidFile):
        book(db, request(), receipt=text, storage=supabase.receipt_storage())
    assert supabase.uploads == []


def test_receipt_without_storage(db):
    with pytest.raises(UploadError, match="Supabase URL and Service Key must be configured"):
        book(db, request(), receipt=PNG, storage=None)


def test_late_conflict_deletes_uploaded_receipt(db, supabase, monkeypatch):
    book(db, request())
    monkeypatch.setattr(booking_module, "is_slot_taken", lambda *args: False)

    with pytest.raises(Conflict):
        book(db, request(email="late@test.com"), receipt=PNG, storage=supabase.receipt_storage())

    assert len(supabase.uploads) == 1
    late = db.query(User).filter(User.email == "late@test.com").one()
    assert supabase.deleted == [f"receipts/{late.id}-1717200000000.png"]
    assert db.query(Booking).count() == 1


def test_late_conflict_keeps_receipt_when_disabled(db, supabase, monkeypatch):
    book(db, request())
    monkeypatch.setattr(booking_module, "is_slot_taken", lambda *args: False)
    monkeypatch.setattr(booking_module.settings, "DELETE_ORPHANED_RECEIPTS", False)

    with pytest.raises(Conflict):
        book(db, request(email="late@test.com"), receipt=PNG, storage=supabase.receipt_storage())

    assert supabase.deleted == []


# ------------------ queries ------------------
def test_queries(db):
    second = book(db, request(date="2025-06-05"))
    first = book(db, request(date="2025-06-01", email="x@test.com"))

    assert [b.id for b in list_bookings(db)] == [first.id, second.id]
    assert get_booking(db, first.id).user.email == "x@test.com"
    assert [b.id for b in list_user_bookings(db, "mina@test.com")] == [second.id]
    assert list_user_bookings(db, "nobody@test.com") == []

    with pytest.raises(NotFound):
        get_booking(db, "missing")


def test_slot_allocator_shares_the_constraint(db, monkeypatch):
    book(db, request())
    monkeypatch.setattr(slots, "is_slot_taken", lambda *args: False)
    monkeypatch.setattr(booking_module, "is_slot_taken", lambda *args: False)

    with pytest.raises(Conflict):
        book(db, request(email="y@test.com"))
