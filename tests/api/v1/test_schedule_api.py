from datetime import datetime, timedelta

import pytest

from app.core.timezone_utils import utcnow

API = "/api/v1/schedule"


@pytest.fixture
def session_id(client, trainer):
    gym_class = client.post(f"{API}/classes", json={
        "name": "Spinning", "category": "CARDIO", "duration_minutes": 45, "max_capacity": 1
    })
    assert gym_class.status_code == 201

    start = (utcnow() + timedelta(days=2)).replace(microsecond=0)
    response = client.post(f"{API}/sessions", json={
        "class_id": gym_class.json()["id"],
        "trainer_id": trainer.id,
        "start_time": start.isoformat(),
        "room": "Sala 1",
    })
    assert response.status_code == 201
    assert response.json()["capacity"] == 1
    return response.json()["id"]


@pytest.fixture
def package_id(client):
    response = client.post(f"{API}/packages", json={
        "name": "Bono 3", "credits_included": 3, "price_cents": 3000, "validity_days": 60
    })
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def buy(client, package_id):
    def _buy(member_id):
        response = client.post(f"{API}/packages/{package_id}/purchase", json={"member_id": member_id})
        assert response.status_code == 201
        return response.json()

    return _buy


def _book(client, member_id, schedule_id, **extra):
    return client.post(f"{API}/bookings", json={"member_id": member_id, "schedule_id": schedule_id, **extra})


class TestBookingEndpoints:

    def test_book_consumes_credit(self, client, member, session_id, buy):
        class_pass = buy(member.id)
        assert class_pass["remaining_credits"] == 3

        response = _book(client, member.id, session_id)

        assert response.status_code == 201
        assert response.json()["status"] == "CONFIRMED"
        credits = client.get(f"{API}/credits/{member.id}").json()
        assert credits["total_remaining_credits"] == 2

    def test_book_without_credits_returns_402(self, client, member, session_id):
        response = _book(client, member.id, session_id)

        assert response.status_code == 402
        assert response.json()["code"] == "INSUFFICIENT_CREDITS"

    def test_full_session_offers_waitlist(self, client, make_member, session_id, buy):
        first, second = make_member(), make_member()
        buy(first.id)
        buy(second.id)
        _book(client, first.id, session_id)

        response = _book(client, second.id, session_id)

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "CAPACITY_EXCEEDED"
        assert body["waitlist_position"] == 1
        entry = client.get(f"{API}/waitlist/{body['waitlist_entry_id']}").json()
        assert entry["status"] == "WAITING"

    def test_full_session_without_waitlist(self, client, make_member, session_id, buy):
        first, second = make_member(), make_member()
        buy(first.id)
        buy(second.id)
        _book(client, first.id, session_id)

        response = _book(client, second.id, session_id, join_waitlist=False)

        assert response.status_code == 409
        assert "waitlist_entry_id" not in response.json()

    def test_cancel_promotes_waitlist_and_accept(self, client, make_member, session_id, buy):
        first, second = make_member(), make_member()
        buy(first.id)
        buy(second.id)
        booking_id = _book(client, first.id, session_id).json()["id"]
        entry_id = _book(client, second.id, session_id).json()["waitlist_entry_id"]

        cancelled = client.post(f"{API}/bookings/{booking_id}/cancel", json={"reason": "Viaje"})

        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "CANCELLED"
        assert client.get(f"{API}/credits/{first.id}").json()["total_remaining_credits"] == 3
        offered = client.get(f"{API}/waitlist/{entry_id}").json()
        assert offered["status"] == "NOTIFIED"

        accepted = client.post(f"{API}/waitlist/{entry_id}/accept")

        assert accepted.status_code == 200
        assert accepted.json()["status"] == "BOOKED"

    def test_invalid_status_transition_returns_409(self, client, member, session_id, buy):
        buy(member.id)
        booking_id = _book(client, member.id, session_id).json()["id"]
        client.post(f"{API}/bookings/{booking_id}/cancel")

        response = client.patch(f"{API}/bookings/{booking_id}/status", json={"status": "COMPLETED"})

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "INVALID_STATE_TRANSITION"
        assert (body["from"], body["to"]) == ("CANCELLED", "COMPLETED")

    def test_credit_transactions_ledger(self, client, member, session_id, buy):
        buy(member.id)
        _book(client, member.id, session_id)

        response = client.get(f"{API}/credits/{member.id}/transactions")

        assert response.status_code == 200
        types = sorted(t["type"] for t in response.json())
        assert types == ["PURCHASE", "USAGE"]


def test_session_end_defaults_to_class_duration(client, session_id):
    response = client.get(f"{API}/sessions/{session_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["available_spots"] == 1
    start = datetime.fromisoformat(data["start_time"])
    end = datetime.fromisoformat(data["end_time"])
    assert end - start == timedelta(minutes=45)
