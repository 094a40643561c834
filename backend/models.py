import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Date, DateTime, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base


def _new_id():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    phone = Column(String, nullable=False)

    bookings = relationship("Booking", back_populates="user")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # one booking per date + time label
        UniqueConstraint("date", "time", name="uq_bookings_date_time"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type_ar = Column(String, nullable=False)
    type_en = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    reason_ar = Column(String, nullable=True)
    reason_en = Column(String, nullable=True)
    date = Column(Date, nullable=False, index=True)
    time = Column(String, nullable=False)
    receipt_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    user = relationship("User", back_populates="bookings")
