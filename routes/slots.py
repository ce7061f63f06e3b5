from datetime import timedelta

from flask import Blueprint, request, jsonify, g, current_app

from models.slot import Slot
from security.rbac import require_roles
from services import store
from services.reminders import start_of_day
from utils.auth_context import login_required
from utils.core import get_lifecycle, parse_iso

slot_bp = Blueprint("slots", __name__)


def _window_args(data):
    try:
        return parse_iso(data.get("start_time")), parse_iso(data.get("end_time"))
    except (TypeError, ValueError):
        return None


# ---------- FACULTY: create slot ----------
@slot_bp.post("/slots")
@require_roles("FACULTY")
def create_slot():
    data = request.get_json(silent=True) or {}
    window = _window_args(data)
    if window is None:
        return jsonify(error="Invalid datetime format. Use ISO e.g. 2026-01-20T18:00:00"), 400
    start_time, end_time = window

    slot = get_lifecycle().create_slot(
        g.user,
        start_time,
        end_time,
        data.get("location"),
        capacity=data.get("capacity") or 1,
        notes=data.get("notes"),
    )
    return jsonify(slot.to_dict()), 201


# ---------- ANY USER: available slots ----------
@slot_bp.get("/slots")
@login_required
def list_available_slots():
    faculty_id = request.args.get("faculty_id", type=int)
    try:
        start = parse_iso(request.args.get("start_date"))
        end = parse_iso(request.args.get("end_date"))
    except ValueError:
        return jsonify(error="Invalid date. Use ISO e.g. 2026-01-20"), 400

    now = current_app.extensions["clock"].now()
    slots = store.find_available_slots(faculty_id=faculty_id, start=start, end=end, now=now)
    return jsonify([s.to_dict() for s in slots]), 200


# ---------- FACULTY: own slots ----------
@slot_bp.get("/slots/mine")
@require_roles("FACULTY")
def my_slots():
    status = request.args.get("status")
    q = Slot.query.filter_by(faculty_id=g.user.id)
    if status:
        q = q.filter_by(status=status)
    rows = q.order_by(Slot.start_time.asc()).limit(200).all()
    return jsonify([s.to_dict() for s in rows]), 200


# ---------- FACULTY: today's slots with approved bookings ----------
@slot_bp.get("/slots/today")
@require_roles("FACULTY")
def today_slots():
    day_start = start_of_day(current_app.extensions["clock"].now())
    slots = store.find_faculty_slots_between(g.user.id, day_start, day_start + timedelta(days=1))

    by_slot = {s.id: [] for s in slots}
    for b in store.find_approved_for_slots(list(by_slot)):
        row = b.to_dict()
        row["student"] = {"id": b.student.id, "name": b.student.display_name, "email": b.student.email}
        by_slot[b.slot_id].append(row)

    out = [dict(s.to_dict(), bookings=by_slot[s.id]) for s in slots]
    return jsonify(count=len(out), slots=out), 200


@slot_bp.get("/slots/<int:slot_id>")
@login_required
def get_slot(slot_id: int):
    slot = store.get_slot(slot_id)
    if not slot:
        return jsonify(error="Slot not found"), 404
    return jsonify(slot.to_dict()), 200


@slot_bp.patch("/slots/<int:slot_id>")
@require_roles("FACULTY")
def update_slot(slot_id: int):
    data = request.get_json(silent=True) or {}
    window = _window_args(data)
    if window is None:
        return jsonify(error="Invalid datetime format. Use ISO e.g. 2026-01-20T18:00:00"), 400
    start_time, end_time = window

    slot = get_lifecycle().update_slot(
        g.user,
        slot_id,
        start_time=start_time,
        end_time=end_time,
        location=data.get("location"),
        notes=data.get("notes"),
        capacity=data.get("capacity"),
    )
    return jsonify(slot.to_dict()), 200


# ---------- FACULTY: cancel slot (cascades to bookings) ----------
@slot_bp.post("/slots/<int:slot_id>/cancel")
@require_roles("FACULTY")
def cancel_slot(slot_id: int):
    data = request.get_json(silent=True) or {}
    slot, affected = get_lifecycle().cancel_slot(g.user, slot_id, data.get("reason"))
    return jsonify(message="Slot cancelled", slot=slot.to_dict(), affected_bookings=len(affected)), 200


@slot_bp.delete("/slots/<int:slot_id>")
@require_roles("FACULTY")
def delete_slot(slot_id: int):
    get_lifecycle().delete_slot(g.user, slot_id)
    return jsonify(message="Slot deleted"), 200
