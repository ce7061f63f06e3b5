from flask import Blueprint, request, jsonify, g

from models.booking import Booking
from security.rbac import require_roles
from services import store
from utils.auth_context import login_required
from utils.core import get_lifecycle

booking_bp = Blueprint("booking", __name__)


def _reason(data):
    return (data.get("reason") or "").strip() or None


# ---------- STUDENTS: request a booking ----------
@booking_bp.post("/bookings")
@require_roles("STUDENT")
def create_booking():
    data = request.get_json(silent=True) or {}
    slot_id = data.get("slot_id")
    if not slot_id:
        return jsonify(error="slot_id required"), 400

    try:
        slot_id = int(slot_id)
    except (TypeError, ValueError):
        return jsonify(error="slot_id must be an integer"), 400

    booking = get_lifecycle().create_booking(g.user, slot_id, data.get("purpose"))
    return jsonify(booking.to_dict(include_slot=True)), 201


# ---------- STUDENTS: view my bookings ----------
@booking_bp.get("/bookings/me")
@login_required
def my_bookings():
    status = request.args.get("status")
    q = Booking.query.filter_by(student_id=g.user.id)
    if status:
        q = q.filter_by(status=status)

    rows = q.order_by(Booking.created_at.desc()).limit(200).all()
    return jsonify([b.to_dict(include_slot=True) for b in rows]), 200


# ---------- FACULTY: requests on my slots ----------
@booking_bp.get("/bookings/faculty")
@require_roles("FACULTY")
def faculty_bookings():
    status = request.args.get("status")
    q = Booking.query.filter_by(faculty_id=g.user.id)
    if status:
        q = q.filter_by(status=status)

    rows = q.order_by(Booking.created_at.desc()).limit(200).all()
    return jsonify([b.to_dict(include_slot=True) for b in rows]), 200


@booking_bp.get("/bookings/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = store.get_booking(booking_id)
    if not booking:
        return jsonify(error="Booking not found"), 404
    if g.user.id not in (booking.student_id, booking.faculty_id):
        return jsonify(error="Not authorized to view this booking"), 403
    return jsonify(booking.to_dict(include_slot=True)), 200


@booking_bp.post("/bookings/<int:booking_id>/approve")
@require_roles("FACULTY")
def approve_booking(booking_id: int):
    booking = get_lifecycle().approve(g.user, booking_id)
    return jsonify(message="Booking approved successfully", booking=booking.to_dict()), 200


@booking_bp.post("/bookings/<int:booking_id>/reject")
@require_roles("FACULTY")
def reject_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    booking = get_lifecycle().reject(g.user, booking_id, _reason(data))
    return jsonify(message="Booking rejected successfully", booking=booking.to_dict()), 200


@booking_bp.post("/bookings/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    booking = get_lifecycle().cancel(g.user, booking_id, _reason(data))
    return jsonify(message="Booking cancelled successfully", booking=booking.to_dict()), 200


@booking_bp.post("/bookings/<int:booking_id>/check-in")
@login_required
def check_in(booking_id: int):
    booking = get_lifecycle().check_in(g.user, booking_id)
    return jsonify(booking.to_dict()), 200


@booking_bp.post("/bookings/<int:booking_id>/attendance")
@require_roles("FACULTY")
def mark_attendance(booking_id: int):
    data = request.get_json(silent=True) or {}
    booking = get_lifecycle().mark_attendance(g.user, booking_id, data.get("status"), data.get("notes"))
    return jsonify(booking.to_dict()), 200
