from datetime import datetime

from flask import Blueprint, jsonify, g

from models import db
from models.notification import Notification
from utils.auth_context import login_required

notification_bp = Blueprint("notifications", __name__, url_prefix="/notifications")


@notification_bp.get("/me")
@login_required
def my_notifications():
    rows = (
        Notification.query
        .filter_by(user_id=g.user.id)
        .order_by(Notification.created_at.desc())
        .limit(100)
        .all()
    )
    return jsonify([n.to_dict() for n in rows]), 200


@notification_bp.post("/<int:notification_id>/read")
@login_required
def mark_read(notification_id: int):
    row = db.session.get(Notification, notification_id)
    if not row or row.user_id != g.user.id:
        return jsonify(error="Notification not found"), 404
    if not row.read:
        row.read = True
        row.read_at = datetime.utcnow()
        db.session.commit()
    return jsonify(row.to_dict()), 200
