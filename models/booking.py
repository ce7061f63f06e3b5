from datetime import datetime
from models.db import db

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
CANCELLED = "cancelled"
COMPLETED = "completed"
NO_SHOW = "no-show"

BOOKING_STATUSES = (PENDING, APPROVED, REJECTED, CANCELLED, COMPLETED, NO_SHOW)
ACTIVE_STATUSES = (PENDING, APPROVED)

ATTENDANCE_PENDING = "pending"
ATTENDANCE_CHECKED_IN = "checked-in"
ATTENDANCE_ATTENDED = "attended"
ATTENDANCE_NO_SHOW = "no-show"
ATTENDANCE_RESCHEDULED = "rescheduled"

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    # nulled if the slot row is deleted; history is kept for no-show stats
    slot_id = db.Column(db.Integer, db.ForeignKey("slots.id", ondelete="SET NULL"), nullable=True, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # copied from the slot when the booking is created, never re-derived
    faculty_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    purpose = db.Column(db.String(300), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PENDING)

    rejection_reason = db.Column(db.String(200), nullable=True)
    cancellation_reason = db.Column(db.String(200), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    rejected_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    attendance_status = db.Column(db.String(20), nullable=False, default=ATTENDANCE_PENDING)
    checked_in_at = db.Column(db.DateTime, nullable=True)
    attendance_marked_at = db.Column(db.DateTime, nullable=True)
    attendance_marked_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    attendance_notes = db.Column(db.Text, nullable=True)

    is_waitlisted = db.Column(db.Boolean, default=False, nullable=False)
    waitlist_position = db.Column(db.Integer, nullable=True)
    promoted_from_waitlist = db.Column(db.Boolean, default=False, nullable=False)
    promoted_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    slot = db.relationship("Slot", foreign_keys=[slot_id])
    student = db.relationship("User", foreign_keys=[student_id])

    __table_args__ = (
        db.Index("ix_bookings_student_created", "student_id", "created_at"),
        db.Index("ix_bookings_faculty_status", "faculty_id", "status"),
        # One live request per student per slot
        db.Index(
            "uq_bookings_active_student_slot",
            "student_id",
            "slot_id",
            unique=True,
            postgresql_where=db.text("status IN ('pending', 'approved')"),
            sqlite_where=db.text("status IN ('pending', 'approved')"),
        ),
    )

    def to_dict(self, include_slot: bool = False):
        out = {
            "id": self.id,
            "slot_id": self.slot_id,
            "student_id": self.student_id,
            "faculty_id": self.faculty_id,
            "purpose": self.purpose,
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "cancellation_reason": self.cancellation_reason,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "rejected_at": self.rejected_at.isoformat() if self.rejected_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "attendance": {
                "status": self.attendance_status,
                "checked_in_at": self.checked_in_at.isoformat() if self.checked_in_at else None,
                "marked_at": self.attendance_marked_at.isoformat() if self.attendance_marked_at else None,
                "marked_by": self.attendance_marked_by,
                "notes": self.attendance_notes,
            },
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_slot and self.slot is not None:
            out["slot"] = self.slot.to_dict()
        return out
