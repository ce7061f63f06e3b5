from .clock import SystemClock, FixedClock
from .errors import (
    BookingError,
    NotFound,
    Forbidden,
    InvalidState,
    Conflict,
    InvalidWindow,
    ValidationError,
)
from .lifecycle import BookingLifecycle
from .notifier import Notifier, build_notifier
from .reminders import ReminderScheduler
