from datetime import datetime
from sqlalchemy import event
from models.db import db

SLOT_ACTIVE = "active"
SLOT_CANCELLED = "cancelled"
SLOT_COMPLETED = "completed"
SLOT_STATUSES = (SLOT_ACTIVE, SLOT_CANCELLED, SLOT_COMPLETED)

class Slot(db.Model):
    __tablename__ = "slots"

    id = db.Column(db.Integer, primary_key=True)

    faculty_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)

    location = db.Column(db.String(160), nullable=False)
    notes = db.Column(db.String(300), nullable=True)

    capacity = db.Column(db.Integer, nullable=False, default=1)
    booked_count = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=SLOT_ACTIVE)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    faculty = db.relationship("User", foreign_keys=[faculty_id])

    __table_args__ = (
        db.Index("ix_slots_faculty_start", "faculty_id", "start_time"),
        db.CheckConstraint("capacity >= 1", name="ck_slots_capacity_positive"),
        db.CheckConstraint("booked_count >= 0", name="ck_slots_booked_count_non_negative"),
    )

    def check_availability(self) -> bool:
        # column defaults are not applied yet in before_insert
        status = self.status or SLOT_ACTIVE
        return (self.booked_count or 0) < (self.capacity or 1) and status == SLOT_ACTIVE

    def to_dict(self):
        return {
            "id": self.id,
            "faculty_id": self.faculty_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "location": self.location,
            "notes": self.notes,
            "capacity": self.capacity,
            "booked_count": self.booked_count,
            "status": self.status,
            "is_available": self.is_available,
        }


@event.listens_for(Slot, "before_insert")
@event.listens_for(Slot, "before_update")
def _recompute_availability(mapper, connection, target):
    target.is_available = target.check_availability()
