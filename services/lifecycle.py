"""
Booking and slot state transitions.

Every status change is a compare-and-set UPDATE keyed on the expected
current status, so two transitions racing on the same booking cannot both
apply (and cannot both give a seat back). Seat counts move only through
services.store.
"""
import logging
from datetime import datetime
from typing import List, Tuple

from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import (
    ACTIVE_STATUSES,
    APPROVED,
    ATTENDANCE_ATTENDED,
    ATTENDANCE_CHECKED_IN,
    ATTENDANCE_NO_SHOW,
    CANCELLED,
    COMPLETED,
    NO_SHOW,
    PENDING,
    REJECTED,
    Booking,
)
from models import notification as kinds
from models.slot import SLOT_CANCELLED, Slot
from models.user import ADMIN, FACULTY
from services import store
from services.clock import SystemClock
from services.conflicts import check_can_book, windows_overlap
from services.errors import (
    DUPLICATE_REQUEST,
    HAS_ACTIVE_BOOKINGS,
    SLOT_FULL,
    SLOT_OVERLAP,
    TIME_OVERLAP,
    Conflict,
    Forbidden,
    InvalidState,
    InvalidWindow,
    NotFound,
    ValidationError,
)
from services.notifier import Notifier
from utils.audit import log_event

logger = logging.getLogger(__name__)

PURPOSE_MAX = 300
REASON_MAX = 200
NOTES_MAX = 300


def _clean(text, limit, field, required=False):
    text = (text or "").strip()
    if required and not text:
        raise ValidationError(f"{field} is required")
    if len(text) > limit:
        raise ValidationError(f"{field} must be at most {limit} characters")
    return text or None


class BookingLifecycle:
    def __init__(self, clock=None, notifier: Notifier = None):
        self.clock = clock or SystemClock()
        self.notifier = notifier or Notifier()

    # ---------- helpers ----------

    def _load_booking(self, booking_id: int) -> Booking:
        booking = store.get_booking(booking_id)
        if not booking:
            raise NotFound("Booking not found")
        return booking

    def _load_slot(self, slot_id: int, for_update: bool = False) -> Slot:
        if for_update:
            slot = Slot.query.filter_by(id=slot_id).with_for_update().first()
        else:
            slot = store.get_slot(slot_id)
        if not slot:
            raise NotFound("Slot not found")
        return slot

    def _transition(self, booking: Booking, allowed, message: str, **values):
        values["updated_at"] = self.clock.now()
        updated = (
            Booking.query
            .filter(Booking.id == booking.id, Booking.status.in_(allowed))
            .update(values, synchronize_session=False)
        )
        if not updated:
            db.session.rollback()
            raise InvalidState(message)

    def _notify(self, user_id, type, title, body, **fields):
        try:
            self.notifier.notify(user_id, type, title, body, **fields)
        except Exception:
            # the transition is already committed
            logger.exception("Could not notify user %s (%s)", user_id, type)
            db.session.rollback()

    def _clashes_with_approved(self, booking: Booking) -> bool:
        # pending requests may overlap; two approved ones may not
        slot = booking.slot
        if slot is None:
            return False
        for other in store.find_approved_by_student(booking.student_id):
            if other.id == booking.id or other.slot is None:
                continue
            if windows_overlap(slot.start_time, slot.end_time, other.slot.start_time, other.slot.end_time):
                return True
        return False

    def _booking_updated(self, booking: Booking):
        payload = {"bookingId": booking.id, "status": booking.status}
        self.notifier.emit(booking.student_id, "booking_updated", payload)
        self.notifier.emit(booking.faculty_id, "booking_updated", payload)

    # ---------- bookings ----------

    def create_booking(self, actor, slot_id: int, purpose: str) -> Booking:
        purpose = _clean(purpose, PURPOSE_MAX, "purpose", required=True)
        slot = self._load_slot(slot_id)
        now = self.clock.now()

        existing = store.find_student_bookings_for_slot(actor.id, slot.id) + store.find_approved_by_student(actor.id)
        kind = check_can_book(actor.id, slot, now, existing)
        if kind:
            log_event("BOOKING_FAIL", user_id=actor.id, entity="slot", entity_id=slot.id, metadata={"reason": kind})
            raise Conflict(kind)

        # the check above may be stale by now; the counter update is the arbiter
        if not store.reserve_seat(slot.id, now):
            db.session.rollback()
            log_event("BOOKING_FAIL", user_id=actor.id, entity="slot", entity_id=slot.id, metadata={"reason": SLOT_FULL})
            raise Conflict(SLOT_FULL)

        booking = Booking(
            slot_id=slot.id,
            student_id=actor.id,
            faculty_id=slot.faculty_id,
            purpose=purpose,
            status=PENDING,
            created_at=now,
            updated_at=now,
        )
        db.session.add(booking)
        try:
            db.session.commit()
        except IntegrityError:
            # uq_bookings_active_student_slot; the seat reservation rolls back with it
            db.session.rollback()
            raise Conflict(DUPLICATE_REQUEST)

        log_event("BOOKING_CREATE", user_id=actor.id, entity="booking", entity_id=booking.id, metadata={"slot_id": slot.id})
        self._notify(
            booking.faculty_id,
            kinds.BOOKING_CREATED,
            "New Booking Request",
            f"You have a new booking request from {actor.display_name}",
            booking_id=booking.id,
        )
        return booking

    def approve(self, actor, booking_id: int) -> Booking:
        booking = self._load_booking(booking_id)
        if booking.faculty_id != actor.id:
            raise Forbidden("Not authorized to approve this booking")
        if booking.status != PENDING:
            raise InvalidState("Only pending bookings can be approved")
        if self._clashes_with_approved(booking):
            log_event("BOOKING_APPROVE_FAIL", user_id=actor.id, entity="booking", entity_id=booking.id, metadata={"reason": TIME_OVERLAP})
            raise Conflict(TIME_OVERLAP, "Student already has an approved appointment at this time")

        self._transition(
            booking, [PENDING], "Only pending bookings can be approved",
            status=APPROVED, approved_at=self.clock.now(),
        )
        db.session.commit()

        log_event("BOOKING_APPROVE", user_id=actor.id, entity="booking", entity_id=booking.id)
        self._notify(
            booking.student_id,
            kinds.BOOKING_APPROVED,
            "Booking Approved",
            f"Your booking with {actor.display_name} has been approved",
            booking_id=booking.id,
        )
        self._booking_updated(booking)
        return booking

    def reject(self, actor, booking_id: int, reason: str = None) -> Booking:
        reason = _clean(reason, REASON_MAX, "reason")
        booking = self._load_booking(booking_id)
        if booking.faculty_id != actor.id:
            raise Forbidden("Not authorized to reject this booking")
        if booking.status != PENDING:
            raise InvalidState("Only pending bookings can be rejected")

        self._transition(
            booking, [PENDING], "Only pending bookings can be rejected",
            status=REJECTED, rejection_reason=reason, rejected_at=self.clock.now(),
        )
        if booking.slot_id is not None:
            store.release_seat(booking.slot_id, self.clock.now())
        db.session.commit()

        log_event("BOOKING_REJECT", user_id=actor.id, entity="booking", entity_id=booking.id, metadata={"reason": reason})
        self._notify(
            booking.student_id,
            kinds.BOOKING_REJECTED,
            "Booking Rejected",
            reason or f"Your booking with {actor.display_name} was rejected",
            booking_id=booking.id,
        )
        self._booking_updated(booking)
        return booking

    def cancel(self, actor, booking_id: int, reason: str = None) -> Booking:
        reason = _clean(reason, REASON_MAX, "reason")
        booking = self._load_booking(booking_id)

        is_party = actor.id in (booking.student_id, booking.faculty_id)
        is_admin = actor.has_role(ADMIN)
        if not is_party and not is_admin:
            raise Forbidden("Not authorized to cancel this booking")
        if booking.status in (CANCELLED, REJECTED):
            raise InvalidState("Booking is already cancelled or rejected")
        if booking.status not in ACTIVE_STATUSES:
            raise InvalidState(f"A {booking.status} booking cannot be cancelled")

        if not reason and is_admin and not is_party:
            reason = "Cancelled by admin"

        self._transition(
            booking, ACTIVE_STATUSES, "Booking is no longer active",
            status=CANCELLED, cancellation_reason=reason, cancelled_at=self.clock.now(),
        )
        if booking.slot_id is not None:
            store.release_seat(booking.slot_id, self.clock.now())
        db.session.commit()

        action = "BOOKING_CANCEL" if is_party else "ADMIN_BOOKING_CANCEL"
        log_event(action, user_id=actor.id, entity="booking", entity_id=booking.id, metadata={"reason": reason})

        body = reason or "Your appointment has been cancelled"
        for user_id in (booking.student_id, booking.faculty_id):
            self._notify(user_id, kinds.BOOKING_CANCELLED, "Booking Cancelled", body, booking_id=booking.id)
        self._booking_updated(booking)
        return booking

    def check_in(self, actor, booking_id: int) -> Booking:
        booking = self._load_booking(booking_id)
        if booking.student_id != actor.id:
            raise Forbidden("Not authorized to check in to this booking")
        if booking.status != APPROVED:
            raise InvalidState("Only approved bookings can be checked in")

        booking.attendance_status = ATTENDANCE_CHECKED_IN
        booking.checked_in_at = self.clock.now()
        db.session.commit()

        log_event("BOOKING_CHECK_IN", user_id=actor.id, entity="booking", entity_id=booking.id)
        self.notifier.emit(booking.faculty_id, "booking_updated", {"bookingId": booking.id, "attendance": ATTENDANCE_CHECKED_IN})
        return booking

    def mark_attendance(self, actor, booking_id: int, attendance: str, notes: str = None) -> Booking:
        if attendance not in (ATTENDANCE_ATTENDED, ATTENDANCE_NO_SHOW):
            raise ValidationError("attendance must be 'attended' or 'no-show'")
        notes = _clean(notes, NOTES_MAX, "notes")

        booking = self._load_booking(booking_id)
        if booking.faculty_id != actor.id:
            raise Forbidden("Not authorized to mark attendance for this booking")
        if booking.status != APPROVED:
            raise InvalidState("Attendance can only be marked on approved bookings")

        self._transition(
            booking, [APPROVED], "Attendance can only be marked on approved bookings",
            status=COMPLETED if attendance == ATTENDANCE_ATTENDED else NO_SHOW,
            attendance_status=attendance,
            attendance_marked_at=self.clock.now(),
            attendance_marked_by=actor.id,
            attendance_notes=notes,
        )
        db.session.commit()

        log_event("ATTENDANCE_MARK", user_id=actor.id, entity="booking", entity_id=booking.id, metadata={"attendance": attendance})
        label = "attended" if attendance == ATTENDANCE_ATTENDED else "marked as a no-show"
        self._notify(
            booking.student_id,
            kinds.ATTENDANCE_MARKED,
            "Attendance Recorded",
            f"Your appointment with {actor.display_name} was {label}",
            booking_id=booking.id,
        )
        self._booking_updated(booking)
        return booking

    # ---------- slots ----------

    def create_slot(self, actor, start_time: datetime, end_time: datetime, location: str,
                    capacity: int = 1, notes: str = None) -> Slot:
        if not actor.has_role(FACULTY):
            raise Forbidden("Only faculty can create slots")
        if not start_time or not end_time:
            raise ValidationError("start_time and end_time are required")
        if start_time >= end_time:
            raise InvalidWindow("End time must be after start time")
        location = _clean(location, 160, "location", required=True)
        notes = _clean(notes, NOTES_MAX, "notes")
        capacity = self._check_capacity(capacity)

        if store.find_conflicting_slot(actor.id, start_time, end_time):
            raise Conflict(SLOT_OVERLAP)

        slot = Slot(
            faculty_id=actor.id,
            start_time=start_time,
            end_time=end_time,
            location=location,
            notes=notes,
            capacity=capacity,
            booked_count=0,
        )
        db.session.add(slot)
        db.session.commit()

        log_event("SLOT_CREATE", user_id=actor.id, entity="slot", entity_id=slot.id)
        self.notifier.broadcast("slot_updated", {"action": "created", "slotId": slot.id, "facultyId": actor.id})
        return slot

    def update_slot(self, actor, slot_id: int, start_time: datetime = None, end_time: datetime = None,
                    location: str = None, notes: str = None, capacity: int = None) -> Slot:
        slot = self._load_slot(slot_id, for_update=True)
        if slot.faculty_id != actor.id:
            db.session.rollback()
            raise Forbidden("Not authorized to update this slot")

        new_start = start_time or slot.start_time
        new_end = end_time or slot.end_time
        if new_start >= new_end:
            db.session.rollback()
            raise InvalidWindow("End time must be after start time")

        if (new_start, new_end) != (slot.start_time, slot.end_time):
            if store.find_conflicting_slot(actor.id, new_start, new_end, exclude_id=slot.id):
                db.session.rollback()
                raise Conflict(SLOT_OVERLAP)

        if capacity is not None:
            capacity = self._check_capacity(capacity)
            if capacity < slot.booked_count:
                db.session.rollback()
                raise ValidationError("capacity cannot be lower than the number of booked seats")
            slot.capacity = capacity

        slot.start_time = new_start
        slot.end_time = new_end
        if location is not None:
            slot.location = _clean(location, 160, "location", required=True)
        if notes is not None:
            slot.notes = _clean(notes, NOTES_MAX, "notes")
        slot.updated_at = self.clock.now()
        db.session.commit()

        log_event("SLOT_UPDATE", user_id=actor.id, entity="slot", entity_id=slot.id)
        self.notifier.broadcast("slot_updated", {"action": "updated", "slotId": slot.id, "facultyId": slot.faculty_id})
        return slot

    def cancel_slot(self, actor, slot_id: int, reason: str = None) -> Tuple[Slot, List[Booking]]:
        """
        Cancel the slot and every live booking on it. Safe to repeat: a
        second call finds nothing to cancel and leaves the counter at zero.
        """
        reason = _clean(reason, REASON_MAX, "reason")
        slot = self._load_slot(slot_id, for_update=True)
        is_owner = slot.faculty_id == actor.id
        if not is_owner and not actor.has_role(ADMIN):
            db.session.rollback()
            raise Forbidden("Not authorized to cancel this slot")

        reason = reason or ("Slot cancelled by faculty" if is_owner else "Slot cancelled by admin")
        now = self.clock.now()

        slot.status = SLOT_CANCELLED
        db.session.flush()

        cancelled = []
        for b in store.find_active_bookings_for_slot(slot.id):
            updated = (
                Booking.query
                .filter(Booking.id == b.id, Booking.status.in_(ACTIVE_STATUSES))
                .update(
                    {"status": CANCELLED, "cancellation_reason": reason, "cancelled_at": now, "updated_at": now},
                    synchronize_session=False,
                )
            )
            if updated:
                cancelled.append(b.id)

        # set, not decremented: the slot is closed, nothing holds a seat
        store.reset_seats(slot.id, now)
        db.session.commit()

        log_event(
            "SLOT_CANCEL" if is_owner else "ADMIN_SLOT_CANCEL",
            user_id=actor.id, entity="slot", entity_id=slot.id,
            metadata={"reason": reason, "affected_bookings": len(cancelled)},
        )

        self.notifier.broadcast("slot_updated", {"action": "cancelled", "slotId": slot.id, "facultyId": slot.faculty_id})
        bookings = [store.get_booking(booking_id) for booking_id in cancelled]
        for b in bookings:
            self._notify(
                b.student_id,
                kinds.BOOKING_CANCELLED,
                "Appointment Cancelled",
                reason,
                booking_id=b.id,
                slot_id=slot.id,
            )
            self._booking_updated(b)
        return slot, bookings

    def delete_slot(self, actor, slot_id: int) -> None:
        slot = self._load_slot(slot_id)
        if slot.faculty_id != actor.id and not actor.has_role(ADMIN):
            raise Forbidden("Not authorized to delete this slot")
        if store.count_active_bookings_for_slot(slot.id) > 0:
            raise Conflict(HAS_ACTIVE_BOOKINGS)

        faculty_id = slot.faculty_id
        store.delete_slot(slot)
        db.session.commit()

        log_event("SLOT_DELETE", user_id=actor.id, entity="slot", entity_id=slot_id)
        self.notifier.broadcast("slot_updated", {"action": "deleted", "slotId": slot_id, "facultyId": faculty_id})

    @staticmethod
    def _check_capacity(capacity) -> int:
        try:
            capacity = int(capacity if capacity is not None else 1)
        except (TypeError, ValueError):
            raise ValidationError("capacity must be an integer")
        if capacity < 1:
            raise ValidationError("capacity must be at least 1")
        return capacity
