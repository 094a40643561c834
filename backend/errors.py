class BookingError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(BookingError):
    status_code = 400


class Conflict(BookingError):
    status_code = 409

    def __init__(self, message: str = "This date and time slot is already booked. Please choose another time."):
        super().__init__(message)


class NotFound(BookingError):
    status_code = 404


class UploadError(BookingError):
    status_code = 502

    def __init__(self, message: str, last_error=None):
        super().__init__(message)
        self.last_error = last_error


class InvalidFile(UploadError):
    status_code = 400
