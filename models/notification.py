from datetime import datetime
from models.db import db

BOOKING_CREATED = "booking_created"
BOOKING_APPROVED = "booking_approved"
BOOKING_REJECTED = "booking_rejected"
BOOKING_CANCELLED = "booking_cancelled"
SLOT_CANCELLED = "slot_cancelled"
REMINDER_2HOUR = "reminder_2hour"
REMINDER_1HOUR = "reminder_1hour"
REMINDER_10MIN = "reminder_10min"
ATTENDANCE_MARKED = "attendance_marked"
FACULTY_LOAD_SUGGESTION = "faculty_load_suggestion"

class Notification(db.Model):
    """
    In-app notification row. Rows with a dedup_key double as the
    reminder ledger: at most one per (user, type, dedup_key).
    """
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    type = db.Column(db.String(40), nullable=False)

    title = db.Column(db.String(160), nullable=False)
    body = db.Column(db.String(500), nullable=False)

    booking_id = db.Column(db.Integer, nullable=True)
    slot_id = db.Column(db.Integer, nullable=True)
    action = db.Column(db.String(40), nullable=True)
    date_key = db.Column(db.String(10), nullable=True)  # YYYY-MM-DD
    count = db.Column(db.Integer, nullable=True)

    dedup_key = db.Column(db.String(80), nullable=True)

    read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime, nullable=True)
    sent = db.Column(db.Boolean, default=False, nullable=False)
    sent_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("user_id", "type", "dedup_key", name="uq_notification_dedup"),
        db.Index("ix_notifications_user_read", "user_id", "read"),
    )

    def payload(self) -> dict:
        data = {
            "bookingId": str(self.booking_id) if self.booking_id else None,
            "slotId": str(self.slot_id) if self.slot_id else None,
            "action": self.action,
            "date": self.date_key,
            "count": str(self.count) if self.count is not None else None,
        }
        return {k: v for k, v in data.items() if v is not None}

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "body": self.body,
            "data": self.payload(),
            "read": self.read,
            "sent": self.sent,
            "created_at": self.created_at.isoformat(),
        }
