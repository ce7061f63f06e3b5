"""
Error taxonomy for the booking core.

Every error here is user-correctable input: it is raised to the immediate
caller and never retried. Routes render them through the handler registered
in app.create_app.
"""

SLOT_FULL = "SlotFull"
PAST_SLOT = "PastSlot"
DUPLICATE_REQUEST = "DuplicateRequest"
TIME_OVERLAP = "TimeOverlap"
HAS_ACTIVE_BOOKINGS = "HasActiveBookings"
SLOT_OVERLAP = "SlotOverlap"

CONFLICT_MESSAGES = {
    SLOT_FULL: "Slot is not available",
    PAST_SLOT: "Cannot book past slots",
    DUPLICATE_REQUEST: "You have already booked this slot",
    TIME_OVERLAP: "You have a conflicting appointment at this time",
    HAS_ACTIVE_BOOKINGS: "Cannot delete slot with active bookings. Cancel the slot instead.",
    SLOT_OVERLAP: "Slot conflicts with existing slot",
}


class BookingError(Exception):
    status_code = 400
    code = "BookingError"

    def __init__(self, message: str = None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class NotFound(BookingError):
    status_code = 404
    code = "NotFound"


class Forbidden(BookingError):
    status_code = 403
    code = "Forbidden"


class InvalidState(BookingError):
    status_code = 400
    code = "InvalidState"


class InvalidWindow(BookingError):
    status_code = 400
    code = "InvalidWindow"


class ValidationError(BookingError):
    status_code = 400
    code = "ValidationError"


class Conflict(BookingError):
    status_code = 409
    code = "Conflict"

    def __init__(self, kind: str, message: str = None):
        super().__init__(message or CONFLICT_MESSAGES.get(kind, kind))
        self.kind = kind

    def to_dict(self):
        return {"error": self.message, "code": self.kind}
