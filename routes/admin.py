import json

from flask import Blueprint, jsonify, g, request
from security.rbac import require_roles
from models.audit_log import AuditLog
from utils.core import get_lifecycle, parse_iso

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


# ---------- ADMIN: cancel any booking ----------
@admin_bp.post("/bookings/<int:booking_id>/force-cancel")
@require_roles("ADMIN")
def force_cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or "Cancelled by admin"
    booking = get_lifecycle().cancel(g.user, booking_id, reason)
    return jsonify(message="Booking cancelled", booking=booking.to_dict()), 200


# ---------- ADMIN: cancel any slot ----------
@admin_bp.post("/slots/<int:slot_id>/cancel")
@require_roles("ADMIN")
def admin_cancel_slot(slot_id: int):
    data = request.get_json(silent=True) or {}
    slot, affected = get_lifecycle().cancel_slot(g.user, slot_id, data.get("reason"))
    return jsonify(message="Slot cancelled", slot=slot.to_dict(), affected_bookings=len(affected)), 200


@admin_bp.get("/audit-logs")
@require_roles("ADMIN")
def list_audit_logs():
    action = request.args.get("action")
    try:
        since = parse_iso(request.args.get("from"))
    except ValueError:
        return jsonify(error="Invalid date. Use ISO e.g. 2026-01-20"), 400

    q = AuditLog.query
    if action:
        q = q.filter(AuditLog.action == action)
    if since:
        q = q.filter(AuditLog.timestamp >= since)

    rows = q.order_by(AuditLog.timestamp.desc()).limit(200).all()
    return jsonify([
        {
            "id": r.id,
            "user_id": r.user_id,
            "action": r.action,
            "entity": r.entity,
            "entity_id": r.entity_id,
            "metadata": json.loads(r.metadata_json) if r.metadata_json else None,
            "timestamp": r.timestamp.isoformat(),
        }
        for r in rows
    ]), 200
