from datetime import timedelta

import pytest

from models import db
from models.slot import Slot


def as_user(user):
    return {"X-User-Id": str(user.id)}


@pytest.fixture
def tomorrow_ten(clock):
    return clock.now().replace(hour=10) + timedelta(days=1)


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200


def test_requests_without_actor_are_rejected(client):
    assert client.get("/bookings/me").status_code == 401
    assert client.post("/bookings", json={"slot_id": 1}).status_code == 401


def test_unknown_actor_is_rejected(client):
    assert client.get("/bookings/me", headers={"X-User-Id": "4242"}).status_code == 401
    assert client.get("/bookings/me", headers={"X-User-Id": "abc"}).status_code == 401


def test_security_headers(client):
    resp = client.get("/health")
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_faculty_creates_slot(client, faculty, tomorrow_ten):
    resp = client.post("/slots", headers=as_user(faculty), json={
        "start_time": tomorrow_ten.isoformat(),
        "end_time": (tomorrow_ten + timedelta(hours=1)).isoformat(),
        "location": "B-204",
        "capacity": 2,
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["capacity"] == 2
    assert body["booked_count"] == 0
    assert body["is_available"] is True


def test_slot_with_utc_suffix(client, faculty, tomorrow_ten):
    resp = client.post("/slots", headers=as_user(faculty), json={
        "start_time": tomorrow_ten.isoformat() + "Z",
        "end_time": (tomorrow_ten + timedelta(hours=1)).isoformat() + "Z",
        "location": "B-204",
    })
    assert resp.status_code == 201
    assert resp.get_json()["start_time"] == tomorrow_ten.isoformat()


def test_invalid_window(client, faculty, tomorrow_ten):
    resp = client.post("/slots", headers=as_user(faculty), json={
        "start_time": tomorrow_ten.isoformat(),
        "end_time": tomorrow_ten.isoformat(),
        "location": "B-204",
    })
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "InvalidWindow"


def test_bad_datetime(client, faculty):
    resp = client.post("/slots", headers=as_user(faculty), json={
        "start_time": "next tuesday", "end_time": "later", "location": "B-204",
    })
    assert resp.status_code == 400
    assert "Invalid datetime" in resp.get_json()["error"]


def test_overlapping_slot_conflict(client, faculty, make_slot, tomorrow_ten):
    make_slot(start=tomorrow_ten)
    resp = client.post("/slots", headers=as_user(faculty), json={
        "start_time": (tomorrow_ten + timedelta(minutes=30)).isoformat(),
        "end_time": (tomorrow_ten + timedelta(minutes=90)).isoformat(),
        "location": "B-204",
    })
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "SlotOverlap"


def test_students_cannot_create_slots(client, student, tomorrow_ten):
    resp = client.post("/slots", headers=as_user(student), json={
        "start_time": tomorrow_ten.isoformat(),
        "end_time": (tomorrow_ten + timedelta(hours=1)).isoformat(),
        "location": "Library",
    })
    assert resp.status_code == 403


def test_list_available_slots(client, student, make_slot, clock):
    open_slot = make_slot()
    full = make_slot(start=clock.now() + timedelta(days=2), booked_count=1)
    make_slot(start=clock.now() - timedelta(days=1))

    resp = client.get("/slots", headers=as_user(student))

    assert resp.status_code == 200
    ids = [s["id"] for s in resp.get_json()]
    assert ids == [open_slot.id]
    assert full.id not in ids


def test_booking_flow(client, student, other_student, faculty, make_slot):
    slot = make_slot(capacity=1)

    resp = client.post("/bookings", headers=as_user(student), json={"slot_id": slot.id, "purpose": "Capstone"})
    assert resp.status_code == 201
    booking = resp.get_json()
    assert booking["status"] == "pending"
    assert booking["slot"]["booked_count"] == 1

    resp = client.post("/bookings", headers=as_user(other_student), json={"slot_id": slot.id, "purpose": "Me too"})
    assert resp.status_code == 409
    assert resp.get_json() == {"error": "Slot is not available", "code": "SlotFull"}

    resp = client.post(f"/bookings/{booking['id']}/approve", headers=as_user(faculty))
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["status"] == "approved"

    resp = client.post(f"/bookings/{booking['id']}/approve", headers=as_user(faculty))
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "InvalidState"

    resp = client.post(f"/bookings/{booking['id']}/cancel", headers=as_user(student), json={"reason": "Sick"})
    assert resp.status_code == 200
    assert resp.get_json()["booking"]["cancellation_reason"] == "Sick"

    db.session.expire_all()
    assert db.session.get(Slot, slot.id).booked_count == 0


def test_slot_id_required(client, student):
    resp = client.post("/bookings", headers=as_user(student), json={"purpose": "Anything"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "slot_id required"


def test_missing_slot_is_not_found(client, student):
    resp = client.post("/bookings", headers=as_user(student), json={"slot_id": 999, "purpose": "Anything"})
    assert resp.status_code == 404
    assert resp.get_json()["code"] == "NotFound"


def test_students_cannot_approve(client, student, make_slot):
    slot = make_slot()
    booking = client.post("/bookings", headers=as_user(student), json={"slot_id": slot.id, "purpose": "x"}).get_json()
    resp = client.post(f"/bookings/{booking['id']}/approve", headers=as_user(student))
    assert resp.status_code == 403


def test_other_faculty_cannot_approve(client, student, make_user, make_slot):
    slot = make_slot()
    booking = client.post("/bookings", headers=as_user(student), json={"slot_id": slot.id, "purpose": "x"}).get_json()
    stranger = make_user("FACULTY")
    resp = client.post(f"/bookings/{booking['id']}/approve", headers=as_user(stranger))
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "Forbidden"


def test_booking_visible_to_parties_only(client, student, other_student, faculty, make_slot):
    slot = make_slot()
    booking = client.post("/bookings", headers=as_user(student), json={"slot_id": slot.id, "purpose": "x"}).get_json()

    assert client.get(f"/bookings/{booking['id']}", headers=as_user(student)).status_code == 200
    assert client.get(f"/bookings/{booking['id']}", headers=as_user(faculty)).status_code == 200
    assert client.get(f"/bookings/{booking['id']}", headers=as_user(other_student)).status_code == 403


def test_faculty_cancels_slot(client, student, faculty, make_slot):
    slot = make_slot(capacity=2)
    client.post("/bookings", headers=as_user(student), json={"slot_id": slot.id, "purpose": "x"})

    resp = client.post(f"/slots/{slot.id}/cancel", headers=as_user(faculty), json={})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["affected_bookings"] == 1
    assert body["slot"]["status"] == "cancelled"
    assert body["slot"]["booked_count"] == 0

    mine = client.get("/bookings/me", headers=as_user(student)).get_json()
    assert mine[0]["status"] == "cancelled"
    assert mine[0]["cancellation_reason"] == "Slot cancelled by faculty"


def test_delete_slot_with_bookings_conflicts(client, student, faculty, make_slot):
    slot = make_slot()
    client.post("/bookings", headers=as_user(student), json={"slot_id": slot.id, "purpose": "x"})

    resp = client.delete(f"/slots/{slot.id}", headers=as_user(faculty))
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "HasActiveBookings"


def test_attendance(client, student, faculty, make_slot):
    slot = make_slot()
    booking = client.post("/bookings", headers=as_user(student), json={"slot_id": slot.id, "purpose": "x"}).get_json()
    client.post(f"/bookings/{booking['id']}/approve", headers=as_user(faculty))

    resp = client.post(f"/bookings/{booking['id']}/attendance", headers=as_user(faculty), json={"status": "attended"})

    assert resp.status_code == 200
    assert resp.get_json()["status"] == "completed"
    assert resp.get_json()["attendance"]["status"] == "attended"


def test_notifications_feed(client, student, faculty, make_slot):
    slot = make_slot()
    client.post("/bookings", headers=as_user(student), json={"slot_id": slot.id, "purpose": "x"})

    feed = client.get("/notifications/me", headers=as_user(faculty)).get_json()
    assert [n["type"] for n in feed] == ["booking_created"]
    assert feed[0]["read"] is False

    resp = client.post(f"/notifications/{feed[0]['id']}/read", headers=as_user(faculty))
    assert resp.get_json()["read"] is True

    assert client.post(f"/notifications/{feed[0]['id']}/read", headers=as_user(student)).status_code == 404


def test_admin_force_cancel(client, student, admin, make_slot):
    slot = make_slot()
    booking = client.post("/bookings", headers=as_user(student), json={"slot_id": slot.id, "purpose": "x"}).get_json()

    resp = client.post(f"/admin/bookings/{booking['id']}/force-cancel", headers=as_user(admin), json={})

    assert resp.status_code == 200
    assert resp.get_json()["booking"]["cancellation_reason"] == "Cancelled by admin"

    logs = client.get("/admin/audit-logs?action=ADMIN_BOOKING_CANCEL", headers=as_user(admin)).get_json()
    assert len(logs) == 1
    assert logs[0]["entity_id"] == str(booking["id"])


def test_admin_routes_need_admin(client, faculty):
    assert client.get("/admin/audit-logs", headers=as_user(faculty)).status_code == 403


@pytest.mark.parametrize("slot_id", ["abc", [1], "1.5"])
def test_non_integer_slot_id(client, student, slot_id):
    resp = client.post("/bookings", headers=as_user(student), json={"slot_id": slot_id, "purpose": "x"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "slot_id must be an integer"


def test_todays_slots(client, faculty, student, other_student, make_user, make_slot, make_booking, clock):
    later_today = make_slot(start=clock.now() + timedelta(hours=2), capacity=3)
    make_booking(later_today, student)
    make_booking(later_today, other_student, status="pending")
    make_slot(start=clock.now() + timedelta(days=1))
    make_slot(start=clock.now() + timedelta(hours=5), owner=make_user("FACULTY"))

    resp = client.get("/slots/today", headers=as_user(faculty))

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["count"] == 1
    [slot] = body["slots"]
    assert slot["id"] == later_today.id
    assert [b["student"]["name"] for b in slot["bookings"]] == ["Asha"]
    assert slot["bookings"][0]["status"] == "approved"


def test_todays_slots_skip_cancelled(client, faculty, make_slot, clock):
    slot = make_slot(start=clock.now() + timedelta(hours=1))
    client.post(f"/slots/{slot.id}/cancel", headers=as_user(faculty), json={})

    body = client.get("/slots/today", headers=as_user(faculty)).get_json()
    assert body == {"count": 0, "slots": []}


def test_todays_slots_need_faculty(client, student):
    assert client.get("/slots/today", headers=as_user(student)).status_code == 403
