"""
Queries and atomic updates over slots, bookings and the reminder ledger.

Seat counting never goes through a Python read-modify-write: the counter is
changed by a single conditional UPDATE so two requests racing for the last
seat cannot both win. Callers holding a loaded Slot must refresh it after
any of the *_seat(s) calls.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import contains_eager, joinedload

from models import db
from models.booking import (
    ACTIVE_STATUSES,
    APPROVED,
    ATTENDANCE_ATTENDED,
    ATTENDANCE_NO_SHOW,
    COMPLETED,
    NO_SHOW,
    Booking,
)
from models.notification import Notification
from models.slot import SLOT_ACTIVE, Slot

logger = logging.getLogger(__name__)


def reminder_dedup_key(booking_id: int) -> str:
    return f"booking:{booking_id}"


# ---------- slots ----------

def get_slot(slot_id: int) -> Optional[Slot]:
    return db.session.get(Slot, slot_id)


def reserve_seat(slot_id: int, now: datetime) -> bool:
    """Take one seat if the slot is active and not full. True on success."""
    updated = (
        Slot.query
        .filter(
            Slot.id == slot_id,
            Slot.status == SLOT_ACTIVE,
            Slot.booked_count < Slot.capacity,
        )
        .update(
            {
                Slot.booked_count: Slot.booked_count + 1,
                Slot.is_available: Slot.booked_count + 1 < Slot.capacity,
                Slot.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    return updated == 1


def release_seat(slot_id: int, now: datetime) -> bool:
    """
    Give one seat back, clamped at zero. Returns False when the counter was
    already zero, which means some earlier transition double-released.
    """
    updated = (
        Slot.query
        .filter(Slot.id == slot_id, Slot.booked_count > 0)
        .update(
            {
                Slot.booked_count: Slot.booked_count - 1,
                Slot.is_available: and_(
                    Slot.status == SLOT_ACTIVE,
                    Slot.booked_count - 1 < Slot.capacity,
                ),
                Slot.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    if not updated:
        logger.warning("Seat release on slot %s clamped at zero", slot_id)
    return updated == 1


def reset_seats(slot_id: int, now: datetime) -> None:
    (
        Slot.query
        .filter(Slot.id == slot_id)
        .update(
            {
                Slot.booked_count: 0,
                Slot.is_available: Slot.status == SLOT_ACTIVE,
                Slot.updated_at: now,
            },
            synchronize_session=False,
        )
    )


def find_conflicting_slot(faculty_id: int, start: datetime, end: datetime, exclude_id: int = None) -> Optional[Slot]:
    q = Slot.query.filter(
        Slot.faculty_id == faculty_id,
        Slot.status == SLOT_ACTIVE,
        Slot.start_time < end,
        Slot.end_time > start,
    )
    if exclude_id is not None:
        q = q.filter(Slot.id != exclude_id)
    return q.first()


def find_available_slots(faculty_id: int = None, start: datetime = None, end: datetime = None, now: datetime = None) -> List[Slot]:
    q = Slot.query.filter(Slot.status == SLOT_ACTIVE, Slot.is_available.is_(True))
    if faculty_id:
        q = q.filter(Slot.faculty_id == faculty_id)
    if start and end:
        q = q.filter(Slot.start_time >= start, Slot.start_time <= end)
    elif now:
        q = q.filter(Slot.start_time >= now)
    return q.order_by(Slot.start_time.asc()).all()


def find_faculty_slots_between(faculty_id: int, start: datetime, end: datetime) -> List[Slot]:
    """The faculty's active slots starting in [start, end)."""
    return (
        Slot.query
        .filter(
            Slot.faculty_id == faculty_id,
            Slot.status == SLOT_ACTIVE,
            Slot.start_time >= start,
            Slot.start_time < end,
        )
        .order_by(Slot.start_time.asc())
        .all()
    )


def delete_slot(slot: Slot) -> None:
    db.session.delete(slot)


# ---------- bookings ----------

def get_booking(booking_id: int) -> Optional[Booking]:
    return db.session.get(Booking, booking_id)


def find_student_bookings_for_slot(student_id: int, slot_id: int) -> List[Booking]:
    return (
        Booking.query
        .filter(
            Booking.student_id == student_id,
            Booking.slot_id == slot_id,
            Booking.status.in_(ACTIVE_STATUSES),
        )
        .all()
    )


def find_approved_by_student(student_id: int) -> List[Booking]:
    return (
        Booking.query
        .options(joinedload(Booking.slot))
        .filter(Booking.student_id == student_id, Booking.status == APPROVED)
        .all()
    )


def find_active_bookings_for_slot(slot_id: int) -> List[Booking]:
    return (
        Booking.query
        .filter(Booking.slot_id == slot_id, Booking.status.in_(ACTIVE_STATUSES))
        .order_by(Booking.id.asc())
        .all()
    )


def find_approved_for_slots(slot_ids: List[int]) -> List[Booking]:
    if not slot_ids:
        return []
    return (
        Booking.query
        .options(joinedload(Booking.student))
        .filter(Booking.slot_id.in_(slot_ids), Booking.status == APPROVED)
        .order_by(Booking.id.asc())
        .all()
    )


def count_active_bookings_for_slot(slot_id: int) -> int:
    return (
        Booking.query
        .filter(Booking.slot_id == slot_id, Booking.status.in_(ACTIVE_STATUSES))
        .count()
    )


def find_upcoming_approved_in_window(start: datetime, end: datetime) -> List[Booking]:
    """Approved bookings whose slot starts in [start, end]."""
    return (
        Booking.query
        .join(Slot, Booking.slot_id == Slot.id)
        .options(contains_eager(Booking.slot))
        .filter(
            Booking.status == APPROVED,
            Slot.start_time >= start,
            Slot.start_time <= end,
        )
        .order_by(Slot.start_time.asc(), Booking.id.asc())
        .all()
    )


def approved_counts_by_faculty(start: datetime, end: datetime) -> List[Tuple[int, int]]:
    """(faculty_id, approved bookings) for slots starting in [start, end)."""
    rows = (
        db.session.query(Booking.faculty_id, func.count(Booking.id))
        .join(Slot, Booking.slot_id == Slot.id)
        .filter(
            Booking.status == APPROVED,
            Slot.start_time >= start,
            Slot.start_time < end,
        )
        .group_by(Booking.faculty_id)
        .all()
    )
    return [(faculty_id, count) for faculty_id, count in rows]


def recent_terminal_outcomes(student_id: int, limit: int = 10) -> List[Booking]:
    """The student's newest bookings that ended in attendance or a no-show."""
    return (
        Booking.query
        .filter(
            Booking.student_id == student_id,
            or_(
                Booking.status.in_([COMPLETED, NO_SHOW]),
                Booking.attendance_status.in_([ATTENDANCE_ATTENDED, ATTENDANCE_NO_SHOW]),
            ),
        )
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .limit(limit)
        .all()
    )


# ---------- reminder ledger ----------

def reminder_exists(user_id: int, reminder_type: str, booking_id: int) -> bool:
    return (
        Notification.query
        .filter_by(user_id=user_id, type=reminder_type, dedup_key=reminder_dedup_key(booking_id))
        .first()
        is not None
    )
