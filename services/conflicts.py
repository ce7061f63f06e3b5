"""
Booking legality checks.

Pure functions: they read the objects passed in and nothing else, so they
are safe to call speculatively (e.g. to grey out a slot in a listing).
"""
from datetime import datetime
from typing import Iterable, Optional

from models.booking import ACTIVE_STATUSES, APPROVED
from models.slot import SLOT_ACTIVE
from services.errors import DUPLICATE_REQUEST, PAST_SLOT, SLOT_FULL, TIME_OVERLAP


def windows_overlap(s1: datetime, e1: datetime, s2: datetime, e2: datetime) -> bool:
    # Half-open [s, e): touching windows do not overlap
    return s1 < e2 and s2 < e1


def check_can_book(student_id: int, slot, now: datetime, existing_bookings: Iterable) -> Optional[str]:
    """
    Returns None when the student may book the slot, otherwise the conflict
    kind. `existing_bookings` are the student's bookings with their slots
    loaded; statuses other than pending/approved are ignored.
    """
    if slot.status != SLOT_ACTIVE or slot.booked_count >= slot.capacity:
        return SLOT_FULL

    if slot.start_time < now:
        return PAST_SLOT

    existing_bookings = list(existing_bookings)

    for b in existing_bookings:
        if b.student_id == student_id and b.slot_id == slot.id and b.status in ACTIVE_STATUSES:
            return DUPLICATE_REQUEST

    for b in existing_bookings:
        if b.status != APPROVED or b.slot_id == slot.id or b.slot is None:
            continue
        if windows_overlap(slot.start_time, slot.end_time, b.slot.start_time, b.slot.end_time):
            return TIME_OVERLAP

    return None
