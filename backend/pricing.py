from types import MappingProxyType

# ================== BOOKING TYPES ==================
BOOKING_TYPE_TRANSLATIONS = MappingProxyType({
    "premium": {"ar": "تجربة المسرح المميزة", "en": "Premium Theater Experience"},
    "standard": {"ar": "عرض المسرح القياسي", "en": "Standard Theater Show"},
    "matinee": {"ar": "عرض ما بعد الظهر", "en": "Matinee Performance"},
    "group": {"ar": "حجز جماعي (5+ أشخاص)", "en": "Group Booking (5+ people)"},
    "vip": {"ar": "باقة المسرح VIP", "en": "VIP Theater Package"},
})

REHEARSALS = "rehearsals"
EVENTS = "events"

REHEARSAL_PRICE_PER_HOUR = 50
EVENT_BLOCK_PRICE = 300

FIRST_HOUR = 10
LAST_HOUR = 22
EVENT_BLOCK_HOURS = 4
EVENT_BLOCK_STARTS = (10, 14, 18)


def hour_label(hour: int) -> str:
    """24h hour -> "2:00 PM" style label."""
    period = "PM" if hour >= 12 else "AM"
    display = hour - 12 if hour > 12 else (12 if hour == 0 else hour)
    return f"{display}:00 {period}"


REHEARSAL_SLOTS = tuple(hour_label(h) for h in range(FIRST_HOUR, LAST_HOUR + 1))

EVENT_BLOCKS = tuple(
    (hour_label(start), hour_label(start + EVENT_BLOCK_HOURS))
    for start in EVENT_BLOCK_STARTS
)


def compute_price(booking_type: str, time_from: str, time_to: str) -> int:
    """Price for a booking type and time range; 0 means the range is invalid."""
    if booking_type == REHEARSALS:
        if time_from not in REHEARSAL_SLOTS or time_to not in REHEARSAL_SLOTS:
            return 0
        hours = REHEARSAL_SLOTS.index(time_to) - REHEARSAL_SLOTS.index(time_from)
        if hours <= 0:
            return 0
        return hours * REHEARSAL_PRICE_PER_HOUR

    if booking_type == EVENTS:
        if (time_from, time_to) in EVENT_BLOCKS:
            return EVENT_BLOCK_PRICE
        return 0

    return 0


def format_time_range(time_from: str, time_to: str) -> str:
    return f"{time_from} - {time_to}"


def translate_booking_type(code: str) -> tuple[str, str]:
    """Return (arabic, english) display strings; unknown codes pass through."""
    translation = BOOKING_TYPE_TRANSLATIONS.get(code)
    if translation is None:
        return code, code
    return translation["ar"], translation["en"]


def booking_type_catalog() -> dict:
    return {
        REHEARSALS: {
            "name": "Rehearsals",
            "price_per_hour": REHEARSAL_PRICE_PER_HOUR,
            "time_slots": list(REHEARSAL_SLOTS),
        },
        EVENTS: {
            "name": "Events",
            "price_per_block": EVENT_BLOCK_PRICE,
            "block_hours": EVENT_BLOCK_HOURS,
            "time_blocks": [{"from": f, "to": t} for f, t in EVENT_BLOCKS],
        },
    }
