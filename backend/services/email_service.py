import logging

from fastapi_mail import FastMail, MessageSchema, ConnectionConfig, MessageType

from config import settings

logger = logging.getLogger(__name__)


def mail_config() -> ConnectionConfig:
    return ConnectionConfig(
        MAIL_USERNAME=settings.MAIL_USERNAME,
        MAIL_PASSWORD=settings.MAIL_PASSWORD,
        MAIL_FROM=settings.MAIL_FROM,
        MAIL_PORT=settings.MAIL_PORT,
        MAIL_SERVER=settings.MAIL_SERVER,
        MAIL_STARTTLS=True,
        MAIL_SSL_TLS=False,
        USE_CREDENTIALS=True,
    )


def render_booking_email(booking) -> str:
    receipt = ""
    if booking.receipt_url:
        receipt = f'<p>Receipt: <a href="{booking.receipt_url}">{booking.receipt_url}</a></p>'
    return f"""
    <html>
    <body>
        <h2>Hello {booking.user.name},</h2>
        <p>Your booking <b>{booking.type_en}</b> on <b>{booking.date.strftime('%d.%m.%Y')}</b>
        at <b>{booking.time}</b> has been received.</p>
        <p>Total: EGP {float(booking.price):g}</p>
        {receipt}
        <hr>
        <p>Thank you for booking with us!</p>
    </body>
    </html>
    """


def render_admin_email(booking) -> str:
    return f"""
    <html>
    <body>
        <h2>New booking</h2>
        <p>Type: {booking.type_en}</p>
        <p>Name: {booking.user.name}</p>
        <p>Phone: {booking.user.phone}</p>
        <p>Email: {booking.user.email}</p>
        <p>Date & time: {booking.date.strftime('%d.%m.%Y')} {booking.time}</p>
        <p>Price: EGP {float(booking.price):g}</p>
        <p>Reason: {booking.reason_en or '–'}</p>
    </body>
    </html>
    """


async def send_booking_notifications(booking):
    """Mail the customer and the admin; failures are logged, never raised."""
    if not settings.mail_enabled:
        logger.debug("Mail not configured, skipping notifications for booking %s", booking.id)
        return

    fm = FastMail(mail_config())
    messages = [
        MessageSchema(
            subject="Booking confirmation",
            recipients=[booking.user.email],
            body=render_booking_email(booking),
            subtype=MessageType.html,
        ),
        MessageSchema(
            subject="New booking received",
            recipients=[settings.ADMIN_EMAIL or settings.MAIL_USERNAME],
            body=render_admin_email(booking),
            subtype=MessageType.html,
        ),
    ]
    for message in messages:
        try:
            await fm.send_message(message)
        except Exception:
            logger.exception("Failed to send booking email to %s", message.recipients)
