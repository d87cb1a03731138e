"""HTTP tests: routing, envelopes and error mapping through the FastAPI app."""

from datetime import date, timedelta

import pytest
from starlette.requests import Request

from app.core.limits import get_rate_limit_key

pytestmark = pytest.mark.integration

LESSON_DATE = (date.today() + timedelta(days=30)).isoformat()


@pytest.fixture
def slot_payload() -> dict:
    return {
        "lesson_type": "theoretical",
        "date": LESSON_DATE,
        "start_time": "10:00",
        "end_time": "12:00",
        "max_capacity": 2,
        "location": "Room 3",
    }


async def _publish(client, headers, payload) -> dict:
    response = await client.post("/api/v1/staff/slots", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestSystem:
    async def test_health(self, client) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_unknown_path(self, client) -> None:
        response = await client.get("/api/v1/nowhere")

        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["error"]["kind"] == "NotFound"

    async def test_request_id_and_security_headers(self, client, world, auth_headers) -> None:
        response = await client.get(
            "/api/v1/students/bookings/my",
            headers={**auth_headers(world.student), "X-Request-ID": "abc123"},
        )

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "abc123"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_rate_limit_key(self) -> None:
        scope = {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": [(b"x-user-id", b"4")],
            "client": ("10.0.0.1", 1234),
        }
        assert get_rate_limit_key(Request(scope)) == "user:4"

        scope["headers"] = []
        assert get_rate_limit_key(Request(scope)) == "10.0.0.1"


class TestErrors:
    async def test_missing_identity(self, client) -> None:
        response = await client.get("/api/v1/students/bookings/my")

        assert response.status_code == 401
        assert response.json()["error"]["kind"] == "Unauthenticated"

    async def test_forbidden(self, client, world, auth_headers, slot_payload) -> None:
        response = await client.post(
            "/api/v1/staff/slots", json=slot_payload, headers=auth_headers(world.student)
        )

        assert response.status_code == 403
        assert response.json()["error"]["kind"] == "Forbidden"

    async def test_invalid_body(self, client, world, auth_headers, slot_payload) -> None:
        slot_payload["max_capacity"] = 0
        response = await client.post(
            "/api/v1/staff/slots", json=slot_payload, headers=auth_headers(world.teacher)
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"]["kind"] == "ValidationError"
        assert body["error"]["details"]["fields"][0]["field"] == "body -> max_capacity"

    async def test_missing_resource(self, client, world, auth_headers) -> None:
        response = await client.post(
            "/api/v1/students/bookings",
            json={"schedule_id": 999},
            headers=auth_headers(world.student),
        )

        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "NotFound"


class TestBookingFlow:
    async def test_publish_book_and_list(self, client, world, auth_headers, slot_payload) -> None:
        slot = await _publish(client, auth_headers(world.teacher), slot_payload)
        assert slot["start_time"] == "10:00"
        assert slot["remaining_capacity"] == 2

        available = await client.get(
            "/api/v1/students/schedule/available",
            params={"lesson_type": "theoretical"},
            headers=auth_headers(world.student),
        )
        assert [s["id"] for s in available.json()["data"]] == [slot["id"]]

        response = await client.post(
            "/api/v1/students/bookings",
            json={"schedule_id": slot["id"]},
            headers=auth_headers(world.student),
        )
        assert response.status_code == 201
        booking = response.json()["data"]
        assert booking["status"] == "confirmed"
        assert booking["end_time"] == "12:00"

        again = await client.post(
            "/api/v1/students/bookings",
            json={"schedule_id": slot["id"]},
            headers=auth_headers(world.student),
        )
        assert again.status_code == 409
        assert again.json()["error"]["kind"] == "AlreadyBooked"

        mine = await client.get("/api/v1/students/bookings/my", headers=auth_headers(world.student))
        assert [b["id"] for b in mine.json()["data"]] == [booking["id"]]

        teacher_view = await client.get(
            f"/api/v1/staff/bookings/teacher/{world.teacher.user_id}",
            headers=auth_headers(world.teacher),
        )
        assert [b["id"] for b in teacher_view.json()["data"]] == [booking["id"]]

        cancelled = await client.post(
            f"/api/v1/students/bookings/{booking['id']}/cancel",
            json={"reason": "exam at school"},
            headers=auth_headers(world.student),
        )
        assert cancelled.json()["data"]["status"] == "cancelled"

    async def test_group_slots(self, client, world, auth_headers, slot_payload) -> None:
        slot = await _publish(client, auth_headers(world.teacher), slot_payload)

        response = await client.get(
            f"/api/v1/students/schedule/groups/{world.group_id}",
            headers=auth_headers(world.student),
        )
        assert [s["id"] for s in response.json()["data"]] == [slot["id"]]

        outsider = await client.get(
            f"/api/v1/students/schedule/groups/{world.group_id}",
            headers=auth_headers(world.outsider),
        )
        assert outsider.status_code == 403

    async def test_update_and_delete_slot(self, client, world, auth_headers, slot_payload) -> None:
        slot = await _publish(client, auth_headers(world.teacher), slot_payload)

        updated = await client.patch(
            f"/api/v1/staff/slots/{slot['id']}",
            json={"location": "Room 7"},
            headers=auth_headers(world.teacher),
        )
        assert updated.json()["data"]["location"] == "Room 7"

        deleted = await client.delete(
            f"/api/v1/staff/slots/{slot['id']}", headers=auth_headers(world.teacher)
        )
        assert deleted.status_code == 200
        assert deleted.json() == {"success": True, "data": None, "error": None}

    async def test_progress_of_new_student(self, client, world, auth_headers) -> None:
        response = await client.get("/api/v1/students/progress/me", headers=auth_headers(world.student))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["student_id"] == world.student.user_id
        assert data["total_lessons"] == 0
        assert data["ready_for_exam"] is False


class TestExamFlow:
    async def test_form_request_review_result(self, client, world, auth_headers) -> None:
        form = await client.post(
            "/api/v1/staff/exam-forms",
            json={
                "group_id": world.group_id,
                "title": "Road test, March",
                "exam_type": "road-test",
                "exam_date": LESSON_DATE,
                "exam_time": "09:30",
                "max_requests": 3,
            },
            headers=auth_headers(world.teacher),
        )
        assert form.status_code == 201, form.text
        form_id = form.json()["data"]["id"]
        assert form.json()["data"]["exam_time"] == "09:30"

        forms = await client.get(
            f"/api/v1/students/exams/forms/{world.group_id}", headers=auth_headers(world.student)
        )
        assert [f["id"] for f in forms.json()["data"]] == [form_id]

        submitted = await client.post(
            "/api/v1/students/exams/requests",
            json={"form_id": form_id},
            headers=auth_headers(world.student),
        )
        assert submitted.status_code == 201
        request_id = submitted.json()["data"]["id"]

        duplicate = await client.post(
            "/api/v1/students/exams/requests",
            json={"form_id": form_id},
            headers=auth_headers(world.student),
        )
        assert duplicate.status_code == 409
        assert duplicate.json()["error"]["kind"] == "DuplicateActiveRequest"

        not_admin = await client.post(
            f"/api/v1/staff/exam-requests/{request_id}/review",
            json={"action": "approve"},
            headers=auth_headers(world.teacher),
        )
        assert not_admin.status_code == 403

        approved = await client.post(
            f"/api/v1/staff/exam-requests/{request_id}/review",
            json={"action": "approve"},
            headers=auth_headers(world.admin),
        )
        assert approved.json()["data"]["status"] == "approved"

        result = await client.post(
            f"/api/v1/staff/exam-requests/{request_id}/result",
            json={"result": "passed"},
            headers=auth_headers(world.teacher),
        )
        assert result.json()["data"]["status"] == "passed"

        again = await client.post(
            f"/api/v1/staff/exam-requests/{request_id}/review",
            json={"action": "reject", "rejection_reason": "late"},
            headers=auth_headers(world.admin),
        )
        assert again.status_code == 409
        assert again.json()["error"]["kind"] == "InvalidTransition"

        listed = await client.get(
            "/api/v1/staff/exam-requests",
            params={"status": "passed"},
            headers=auth_headers(world.admin),
        )
        assert [r["id"] for r in listed.json()["data"]] == [request_id]
