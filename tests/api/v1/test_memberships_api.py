import pytest

API = "/api/v1/memberships"


@pytest.fixture
def plan_id(client):
    response = client.post(f"{API}/plans", json={
        "name": "Trimestral", "price_cents": 10000, "currency": "eur", "duration_days": 90,
        "features": ["Sala", "Clases"]
    })
    assert response.status_code == 201
    assert response.json()["currency"] == "EUR"
    return response.json()["id"]


@pytest.fixture
def discount_code(client):
    response = client.post("/api/v1/discount-codes", json={
        "code": " verano20 ", "type": "PERCENTAGE", "amount": 20, "max_redemptions": 1
    })
    assert response.status_code == 201
    return response.json()["code"]


class TestMembershipEndpoints:

    def test_assign_membership(self, client, member, plan_id):
        response = client.post(API, json={"member_id": member.id, "plan_id": plan_id})

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "ACTIVE"
        assert data["final_price_cents"] == 10000

        listed = client.get(f"/api/v1/members/{member.id}/memberships").json()
        assert [m["id"] for m in listed] == [data["id"]]

    def test_preview_does_not_consume_code(self, client, plan_id, discount_code):
        assert discount_code == "VERANO20"

        for _ in range(2):
            response = client.post(f"{API}/preview-discount", json={"plan_id": plan_id, "code": "verano20"})
            assert response.status_code == 200
            assert response.json() == {
                "code": "VERANO20",
                "original_price_cents": 10000,
                "discount_cents": 2000,
                "final_price_cents": 8000,
            }

    def test_exhausted_code_is_rejected(self, client, make_member, plan_id, discount_code):
        first, second = make_member(), make_member()
        used = client.post(API, json={"member_id": first.id, "plan_id": plan_id, "discount_code": discount_code})
        assert used.json()["final_price_cents"] == 8000

        response = client.post(API, json={"member_id": second.id, "plan_id": plan_id, "discount_code": discount_code})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "DISCOUNT_CODE_INVALID"
        assert body["reason"] == "EXHAUSTED"

    def test_second_current_membership_conflicts(self, client, member, plan_id):
        client.post(API, json={"member_id": member.id, "plan_id": plan_id})

        response = client.post(API, json={"member_id": member.id, "plan_id": plan_id})

        assert response.status_code == 409

    def test_freeze_and_unfreeze(self, client, member, plan_id):
        membership_id = client.post(API, json={"member_id": member.id, "plan_id": plan_id}).json()["id"]

        frozen = client.post(f"{API}/{membership_id}/freeze")
        assert frozen.status_code == 200
        assert frozen.json()["status"] == "FROZEN"

        active = client.post(f"{API}/{membership_id}/unfreeze")
        assert active.json()["status"] == "ACTIVE"

    def test_unknown_plan(self, client, member):
        response = client.post(API, json={"member_id": member.id, "plan_id": 999})

        assert response.status_code == 404
