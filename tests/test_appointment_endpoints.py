"""Tests for appointment endpoints."""

from datetime import timedelta
from uuid import uuid4

import pytest
from httpx import AsyncClient
from jose import jwt

from app.config import settings
from app.core.security import create_actor_token
from tests.helpers import (
    DEPARTMENT_ID,
    HOSPITAL_ID,
    auth_headers_for,
)

BASE = "/api/v1/appointments"


def booking_payload(scheduled_at: str = "2025-11-01T09:00:00Z", **extra) -> dict:
    return {
        "hospital_id": str(HOSPITAL_ID),
        "department_id": str(DEPARTMENT_ID),
        "scheduled_at": scheduled_at,
        **extra,
    }


async def book(client: AsyncClient, headers: dict, **kwargs) -> dict:
    response = await client.post(f"{BASE}/", json=booking_payload(**kwargs), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestHealthEndpoints:
    """Tests for health endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    @pytest.mark.asyncio
    async def test_ping(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/ping")
        assert response.json() == {"message": "pong"}
        assert response.headers["X-Request-ID"]


class TestAuthentication:
    """Tests for the bearer token requirement."""

    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient) -> None:
        response = await client.get(f"{BASE}/")
        assert response.status_code == 401
        assert response.json()["kind"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_garbage_token(self, client: AsyncClient) -> None:
        response = await client.get(
            f"{BASE}/",
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_expired_token(self, client: AsyncClient, patient) -> None:
        token = create_actor_token(
            patient.id,
            "PATIENT",
            expires_delta=timedelta(minutes=-5),
        )
        response = await client.get(
            f"{BASE}/",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_actor_kind(self, client: AsyncClient) -> None:
        token = create_actor_token(uuid4(), "ADMIN")
        response = await client.get(
            f"{BASE}/",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_non_access_token(self, client: AsyncClient) -> None:
        token = jwt.encode(
            {"sub": str(uuid4()), "actor_kind": "PATIENT", "type": "refresh"},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        response = await client.get(
            f"{BASE}/",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 401


class TestBookingEndpoints:
    """Tests for booking and conflict responses."""

    @pytest.mark.asyncio
    async def test_create_appointment(self, client: AsyncClient, patient, patient_headers):
        data = await book(client, patient_headers, reason="Regular checkup")

        assert data["status"] == "BOOKED"
        assert data["patient_id"] == str(patient.id)
        assert data["appointment_number"] == "APT-20251030-00001"
        assert data["created_by"] == {"id": str(patient.id), "kind": "PATIENT"}
        assert "slot_end_at" not in data

    @pytest.mark.asyncio
    async def test_conflict_response(self, client: AsyncClient, patient_headers, other_patient):
        first = await book(client, patient_headers)

        response = await client.post(
            f"{BASE}/",
            json=booking_payload("2025-11-01T09:15:00Z"),
            headers=auth_headers_for(other_patient),
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "SlotConflictException"
        assert body["kind"] == "slot_conflict"
        assert body["details"]["conflicting_appointment_id"] == first["id"]
        assert body["path"].endswith(f"{BASE}/")

    @pytest.mark.asyncio
    async def test_past_date(self, client: AsyncClient, patient_headers):
        response = await client.post(
            f"{BASE}/",
            json=booking_payload("2025-10-01T09:00:00Z"),
            headers=patient_headers,
        )
        assert response.status_code == 422
        assert response.json()["kind"] == "validation_error"

    @pytest.mark.asyncio
    async def test_naive_datetime_rejected(self, client: AsyncClient, patient_headers):
        response = await client.post(
            f"{BASE}/",
            json=booking_payload("2025-11-01T09:00:00"),
            headers=patient_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_missing_department(self, client: AsyncClient, patient_headers):
        payload = booking_payload()
        del payload["department_id"]

        response = await client.post(f"{BASE}/", json=payload, headers=patient_headers)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_staff_books_for_patient(
        self, client: AsyncClient, staff, staff_headers, patient
    ):
        data = await book(client, staff_headers, patient_id=str(patient.id))

        assert data["patient_id"] == str(patient.id)
        assert data["created_by"]["kind"] == "STAFF"


class TestQueryEndpoints:
    """Tests for listing and lookup endpoints."""

    @pytest.mark.asyncio
    async def test_list_mine(self, client: AsyncClient, patient_headers):
        later = await book(client, patient_headers, scheduled_at="2025-11-01T15:00:00Z")
        earlier = await book(client, patient_headers, scheduled_at="2025-11-01T09:00:00Z")

        response = await client.get(f"{BASE}/", headers=patient_headers)

        assert response.status_code == 200
        assert [a["id"] for a in response.json()] == [earlier["id"], later["id"]]

    @pytest.mark.asyncio
    async def test_list_mine_filters(self, client: AsyncClient, patient_headers):
        kept = await book(client, patient_headers, scheduled_at="2025-11-01T09:00:00Z")
        dropped = await book(client, patient_headers, scheduled_at="2025-11-01T11:00:00Z")
        await client.patch(f"{BASE}/{dropped['id']}/cancel", headers=patient_headers)

        upcoming = await client.get(
            f"{BASE}/",
            params={"upcoming": "true"},
            headers=patient_headers,
        )
        cancelled = await client.get(
            f"{BASE}/",
            params={"status": "CANCELLED"},
            headers=patient_headers,
        )

        assert [a["id"] for a in upcoming.json()] == [kept["id"]]
        assert [a["id"] for a in cancelled.json()] == [dropped["id"]]

    @pytest.mark.asyncio
    async def test_get_by_id(self, client: AsyncClient, patient_headers, other_patient):
        created = await book(client, patient_headers)

        own = await client.get(f"{BASE}/{created['id']}", headers=patient_headers)
        foreign = await client.get(
            f"{BASE}/{created['id']}",
            headers=auth_headers_for(other_patient),
        )

        assert own.status_code == 200
        assert own.json()["id"] == created["id"]
        assert foreign.status_code == 404
        assert foreign.json()["kind"] == "not_found"

    @pytest.mark.asyncio
    async def test_availability(self, client: AsyncClient, patient_headers):
        await book(client, patient_headers, scheduled_at="2025-11-01T12:00:00Z")

        response = await client.get(
            f"{BASE}/availability",
            params={
                "hospital_id": str(HOSPITAL_ID),
                "department_id": str(DEPARTMENT_ID),
                "date": "2025-11-01",
            },
            headers=patient_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["date"] == "2025-11-01"
        assert len(data["slots"]) == 16
        assert sum(1 for slot in data["slots"] if not slot["available"]) == 3

    @pytest.mark.asyncio
    async def test_availability_requires_department(self, client: AsyncClient, patient_headers):
        response = await client.get(
            f"{BASE}/availability",
            params={"hospital_id": str(HOSPITAL_ID), "date": "2025-11-01"},
            headers=patient_headers,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_hospital_schedule_and_stats(
        self, client: AsyncClient, patient_headers, staff_headers
    ):
        created = await book(client, patient_headers)

        schedule = await client.get(
            f"{BASE}/hospital",
            params={"date": "2025-11-01"},
            headers=staff_headers,
        )
        stats = await client.get(
            f"{BASE}/hospital/stats",
            params={"date": "2025-11-01"},
            headers=staff_headers,
        )

        assert [a["id"] for a in schedule.json()] == [created["id"]]
        assert stats.json()["total"] == 1
        assert stats.json()["pending"] == 1

    @pytest.mark.asyncio
    async def test_hospital_schedule_forbidden_for_patients(
        self, client: AsyncClient, patient_headers
    ):
        response = await client.get(
            f"{BASE}/hospital",
            params={"date": "2025-11-01"},
            headers=patient_headers,
        )
        assert response.status_code == 403
        assert response.json()["kind"] == "authorization_error"


class TestTransitionEndpoints:
    """Tests for state transition endpoints."""

    @pytest.mark.asyncio
    async def test_cancel_without_body(self, client: AsyncClient, patient_headers):
        created = await book(client, patient_headers)

        response = await client.patch(f"{BASE}/{created['id']}/cancel", headers=patient_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "CANCELLED"
        assert data["cancellation_reason"] == "Cancelled by patient"
        assert data["cancelled_at"] is not None

    @pytest.mark.asyncio
    async def test_cancel_twice(self, client: AsyncClient, patient_headers):
        created = await book(client, patient_headers)
        url = f"{BASE}/{created['id']}/cancel"
        await client.patch(url, json={"reason": "Travelling"}, headers=patient_headers)

        response = await client.patch(url, headers=patient_headers)

        assert response.status_code == 409
        body = response.json()
        assert body["kind"] == "invalid_state"
        assert body["details"]["current_status"] == "CANCELLED"

    @pytest.mark.asyncio
    async def test_reschedule(self, client: AsyncClient, patient_headers, other_patient):
        created = await book(client, patient_headers)

        response = await client.patch(
            f"{BASE}/{created['id']}/reschedule",
            json={"new_date": "2025-11-02T09:00:00Z"},
            headers=patient_headers,
        )

        assert response.status_code == 200
        assert response.json()["scheduled_at"].startswith("2025-11-02T09:00:00")
        await book(client, auth_headers_for(other_patient))

    @pytest.mark.asyncio
    async def test_reschedule_conflict(self, client: AsyncClient, patient_headers):
        first = await book(client, patient_headers)
        await book(client, patient_headers, scheduled_at="2025-11-01T11:00:00Z")

        response = await client.patch(
            f"{BASE}/{first['id']}/reschedule",
            json={"new_date": "2025-11-01T11:20:00Z"},
            headers=patient_headers,
        )
        current = await client.get(f"{BASE}/{first['id']}", headers=patient_headers)

        assert response.status_code == 409
        assert current.json()["scheduled_at"].startswith("2025-11-01T09:00:00")

    @pytest.mark.asyncio
    async def test_visit_flow(self, client: AsyncClient, patient_headers, staff_headers):
        created = await book(client, patient_headers)
        url = f"{BASE}/{created['id']}"

        confirmed = await client.patch(f"{url}/confirm", headers=staff_headers)
        checked_in = await client.post(
            f"{url}/check-in",
            json={"notes": "Wheelchair assistance"},
            headers=staff_headers,
        )
        started = await client.patch(f"{url}/start", headers=staff_headers)
        completed = await client.patch(f"{url}/complete", headers=staff_headers)

        assert confirmed.json()["status"] == "CONFIRMED"
        assert checked_in.json()["status"] == "CHECKED_IN"
        assert checked_in.json()["staff_notes"] == "Wheelchair assistance"
        assert started.json()["status"] == "IN_PROGRESS"
        assert completed.json()["status"] == "COMPLETED"

    @pytest.mark.asyncio
    async def test_patient_cannot_check_in(self, client: AsyncClient, patient_headers):
        created = await book(client, patient_headers)

        response = await client.post(
            f"{BASE}/{created['id']}/check-in",
            headers=patient_headers,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_no_show_before_time(self, client: AsyncClient, patient_headers, staff_headers):
        created = await book(client, patient_headers)

        response = await client.patch(f"{BASE}/{created['id']}/no-show", headers=staff_headers)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_no_show_after_time(
        self, client: AsyncClient, clock, patient_headers, staff_headers
    ):
        created = await book(client, patient_headers)
        clock.advance(timedelta(days=3))

        response = await client.patch(f"{BASE}/{created['id']}/no-show", headers=staff_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "NO_SHOW"
