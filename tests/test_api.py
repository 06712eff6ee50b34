from fastapi.testclient import TestClient

from campus_booking.main import app


client = TestClient(app)

TUTOR = {"X-User-ID": "tutor-ana"}
STUDENT = {"X-User-ID": "student-1"}
OTHER_STUDENT = {"X-User-ID": "student-2"}
ADMIN = {"X-User-ID": "admin-1", "X-User-Role": "admin"}


def post_booking(headers=STUDENT, **overrides):
    payload = {
        "provider_id": "tutor-ana",
        "start_ts": "2030-01-07T10:00:00+00:00",
        "end_ts": "2030-01-07T11:00:00+00:00",
        "topic": "Integrales",
        "modality": "online",
    }
    payload.update(overrides)
    return client.post("/api/v1/bookings", json=payload, headers=headers)


def create_room():
    response = client.post(
        "/api/v1/resources",
        json={"name": "Sala de Reuniones Norte", "kind": "sala_reunion", "capacity": 8},
        headers=ADMIN,
    )
    assert response.status_code == 201
    return response.json()["resource"]["id"]


def test_identity_header_is_required():
    response = post_booking(headers={})

    assert response.status_code == 401


def test_template_and_availability_flow():
    response = client.post(
        "/api/v1/templates",
        json={
            "subject": "Cálculo I",
            "modality": "online",
            "day_of_week": "monday",
            "start_time": "10:00",
            "end_time": "12:00",
        },
        headers=TUTOR,
    )
    assert response.status_code == 201
    template = response.json()["template"]
    assert template["provider_id"] == "tutor-ana"

    listed = client.get("/api/v1/templates", params={"provider_id": "tutor-ana"})
    assert [item["id"] for item in listed.json()["templates"]] == [template["id"]]

    availability = client.get(
        "/api/v1/providers/tutor-ana/availability", params={"horizon_days": 8}
    )
    assert availability.status_code == 200
    body = availability.json()
    assert body["timezone"] == "Atlantic/Canary"
    assert len(body["slots"]) >= 4
    assert {slot["subject"] for slot in body["slots"]} == {"Cálculo I"}

    patched = client.patch(
        f"/api/v1/templates/{template['id']}", json={"end_time": "13:00"}, headers=TUTOR
    )
    assert patched.json()["template"]["end_time"] == "13:00"

    deleted = client.delete(f"/api/v1/templates/{template['id']}", headers=TUTOR)
    assert deleted.status_code == 200


def test_template_errors_map_to_codes():
    bad_time = client.post(
        "/api/v1/templates",
        json={
            "subject": "Cálculo I",
            "modality": "online",
            "day_of_week": "monday",
            "start_time": "10h",
            "end_time": "12:00",
        },
        headers=TUTOR,
    )
    assert bad_time.status_code == 400
    assert bad_time.json()["error"] == "invalid_format"


def test_horizon_beyond_limit_is_rejected():
    response = client.get(
        "/api/v1/providers/tutor-ana/availability", params={"horizon_days": 90}
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_range"


def test_booking_lifecycle_over_http():
    created = post_booking()
    assert created.status_code == 201
    booking = created.json()["booking"]
    assert booking["status"] == "pending"
    assert booking["requester_id"] == "student-1"

    conflict = post_booking(
        headers=OTHER_STUDENT,
        start_ts="2030-01-07T10:30:00+00:00",
        end_ts="2030-01-07T11:30:00+00:00",
    )
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "slot_conflict"

    forbidden = client.post(f"/api/v1/bookings/{booking['id']}/accept", headers=STUDENT)
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "forbidden"

    accepted = client.post(f"/api/v1/bookings/{booking['id']}/accept", headers=TUTOR)
    assert accepted.json()["booking"]["status"] == "confirmed"

    moved = client.post(
        f"/api/v1/bookings/{booking['id']}/reschedule",
        json={"start_ts": "2030-01-07T15:00:00+00:00", "end_ts": "2030-01-07T16:00:00+00:00"},
        headers=TUTOR,
    )
    assert moved.json()["booking"]["status"] == "rescheduled"

    cancelled = client.post(f"/api/v1/bookings/{booking['id']}/cancel", headers=STUDENT)
    assert cancelled.json()["booking"]["status"] == "cancelled"

    again = client.post(f"/api/v1/bookings/{booking['id']}/cancel", headers=STUDENT)
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_transition"

    mine = client.get("/api/v1/bookings", headers=STUDENT)
    assert [item["id"] for item in mine.json()["bookings"]] == [booking["id"]]

    fetched = client.get(f"/api/v1/bookings/{booking['id']}")
    assert fetched.json()["booking"]["start_ts"] == "2030-01-07T15:00:00+00:00"


def test_failed_write_is_rolled_back():
    post_booking()
    post_booking(
        start_ts="2030-01-07T12:00:00+00:00", end_ts="2030-01-07T13:00:00+00:00"
    )
    listed = client.get(
        "/api/v1/bookings", params={"provider_id": "tutor-ana"}, headers=TUTOR
    ).json()["bookings"]
    first_id = listed[0]["id"]
    client.post(f"/api/v1/bookings/{first_id}/accept", headers=TUTOR)

    response = client.post(
        f"/api/v1/bookings/{first_id}/reschedule",
        json={"start_ts": "2030-01-07T12:30:00+00:00", "end_ts": "2030-01-07T13:30:00+00:00"},
        headers=TUTOR,
    )

    assert response.status_code == 409
    booking = client.get(f"/api/v1/bookings/{first_id}").json()["booking"]
    assert booking["start_ts"] == "2030-01-07T10:00:00+00:00"
    assert booking["status"] == "confirmed"


def test_booking_validation_errors():
    missing_location = post_booking(modality="presencial", location="")
    assert missing_location.status_code == 400
    assert missing_location.json()["error"] == "missing_required_field"

    reversed_range = post_booking(
        start_ts="2030-01-07T11:00:00+00:00", end_ts="2030-01-07T10:00:00+00:00"
    )
    assert reversed_range.status_code == 400
    assert reversed_range.json()["error"] == "invalid_range"

    unknown = client.get("/api/v1/bookings/00000000-0000-0000-0000-000000000000")
    assert unknown.status_code == 404
    assert unknown.json()["error"] == "not_found"


def test_naive_timestamps_use_campus_time():
    response = post_booking(
        start_ts="2030-07-01T10:00:00", end_ts="2030-07-01T11:00:00"
    )

    booking = response.json()["booking"]
    assert booking["start_ts"] == "2030-07-01T09:00:00+00:00"
    assert booking["start_local"] == "2030-07-01T10:00:00+01:00"


def test_resource_management_requires_admin():
    response = client.post(
        "/api/v1/resources", json={"name": "Carrel", "kind": "carrel"}, headers=STUDENT
    )

    assert response.status_code == 403
    assert client.get("/api/v1/resources").json()["resources"] == []


def test_reservation_flow_over_http():
    room_id = create_room()
    other_id = client.post(
        "/api/v1/resources", json={"name": "Carrel B-12", "kind": "carrel"}, headers=ADMIN
    ).json()["resource"]["id"]
    payload = {"start_ts": "2030-12-01T10:00:00+00:00", "duration_hours": 1}

    created = client.post(
        f"/api/v1/resources/{room_id}/reservations", json=payload, headers=STUDENT
    )
    assert created.status_code == 201
    reservation = created.json()["reservation"]
    assert reservation["end_ts"] == "2030-12-01T11:00:00+00:00"

    duplicate = client.post(
        f"/api/v1/resources/{room_id}/reservations", json=payload, headers=OTHER_STUDENT
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "already_reserved"

    too_long = client.post(
        f"/api/v1/resources/{other_id}/reservations",
        json={"start_ts": "2030-12-01T10:00:00+00:00", "duration_hours": 9},
        headers=STUDENT,
    )
    assert too_long.status_code == 400
    assert too_long.json()["error"] == "invalid_range"

    mismatch = client.delete(
        f"/api/v1/resources/{other_id}/reservations/{reservation['id']}", headers=STUDENT
    )
    assert mismatch.status_code == 400
    assert mismatch.json()["error"] == "reservation_id_incorrect"

    moved = client.put(
        f"/api/v1/resources/{room_id}/reservations/{reservation['id']}",
        json={"start_ts": "2030-12-01T12:00:00+00:00"},
        headers=STUDENT,
    )
    assert moved.json()["reservation"]["end_ts"] == "2030-12-01T13:00:00+00:00"

    cancelled = client.delete(
        f"/api/v1/resources/{room_id}/reservations/{reservation['id']}", headers=STUDENT
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["reservation"]["status"] == "cancelled"

    rebooked = client.post(
        f"/api/v1/resources/{room_id}/reservations",
        json={"start_ts": "2030-12-01T12:00:00+00:00", "duration_hours": 1},
        headers=OTHER_STUDENT,
    )
    assert rebooked.status_code == 201

    listed = client.get(f"/api/v1/resources/{room_id}/reservations").json()["reservations"]
    assert [item["status"] for item in listed] == ["cancelled", "confirmed"]

    mine = client.get("/api/v1/reservations/mine", headers=STUDENT).json()
    assert [item["id"] for item in mine["reservations"]] == [reservation["id"]]


def test_inactive_resource_over_http():
    room_id = create_room()
    client.patch(f"/api/v1/resources/{room_id}", json={"active": False}, headers=ADMIN)

    response = client.post(
        f"/api/v1/resources/{room_id}/reservations",
        json={"start_ts": "2030-12-01T10:00:00+00:00"},
        headers=STUDENT,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "resource_inactive"
    assert client.get(f"/api/v1/resources/{room_id}").json()["resource"]["active"] is False


def test_reservation_detail_over_http():
    room_id = create_room()
    other_id = client.post(
        "/api/v1/resources", json={"name": "Carrel B-12", "kind": "carrel"}, headers=ADMIN
    ).json()["resource"]["id"]
    reservation = client.post(
        f"/api/v1/resources/{room_id}/reservations",
        json={"start_ts": "2030-12-01T10:00:00+00:00"},
        headers=STUDENT,
    ).json()["reservation"]

    found = client.get(f"/api/v1/resources/{room_id}/reservations/{reservation['id']}")
    mismatch = client.get(f"/api/v1/resources/{other_id}/reservations/{reservation['id']}")
    missing = client.get(
        f"/api/v1/resources/{room_id}/reservations/00000000-0000-0000-0000-000000000000"
    )

    assert found.status_code == 200
    assert found.json()["reservation"]["requester_id"] == "student-1"
    assert mismatch.status_code == 400
    assert mismatch.json()["error"] == "reservation_id_incorrect"
    assert missing.status_code == 404


def test_resource_update_and_delete_over_http():
    room_id = create_room()
    client.post(
        f"/api/v1/resources/{room_id}/reservations",
        json={"start_ts": "2030-12-01T10:00:00+00:00"},
        headers=STUDENT,
    )

    forbidden = client.put(f"/api/v1/resources/{room_id}", json={"capacity": 4}, headers=STUDENT)
    updated = client.put(
        f"/api/v1/resources/{room_id}",
        json={"name": "Sala Norte", "capacity": 10},
        headers=ADMIN,
    )
    bad_capacity = client.put(
        f"/api/v1/resources/{room_id}", json={"capacity": 0}, headers=ADMIN
    )
    deleted = client.delete(f"/api/v1/resources/{room_id}", headers=ADMIN)

    assert forbidden.status_code == 403
    assert updated.json()["resource"]["name"] == "Sala Norte"
    assert updated.json()["resource"]["capacity"] == 10
    assert bad_capacity.status_code == 400
    assert deleted.json() == {"deleted": True, "reservations_removed": 1}
    assert client.get(f"/api/v1/resources/{room_id}").status_code == 404


def test_list_paging_over_http():
    create_room()

    assert len(client.get("/api/v1/resources", params={"limit": 1}).json()["resources"]) == 1
    assert client.get("/api/v1/resources", params={"page": 2}).json()["resources"] == []
    rejected = client.get("/api/v1/resources", params={"limit": 0})
    assert rejected.status_code == 400
    assert rejected.json()["error"] == "invalid_range"
