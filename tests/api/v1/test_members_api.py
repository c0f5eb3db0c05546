API = "/api/v1/members"


def _register(client, email="ana@test.com", **extra):
    payload = {"email": email, "first_name": "Ana", "last_name": "García", **extra}
    return client.post(API, json=payload)


class TestMembersEndpoints:
    """Tests para los endpoints de socios."""

    def test_register_member(self, client):
        response = _register(client, phone="600111222")

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "ana@test.com"
        assert data["is_active"] is True
        assert data["qr_code_token"].startswith(f"M{data['id']}_")

    def test_duplicate_email_returns_conflict(self, client):
        _register(client)

        response = _register(client)

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    def test_invalid_payload_uses_validation_shape(self, client):
        response = client.post(API, json={"email": "no-es-un-email", "first_name": "Ana"})

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        fields = {error["field"] for error in body["errors"]}
        assert "email" in fields
        assert "last_name" in fields

    def test_list_members_is_paginated(self, client):
        for i in range(3):
            _register(client, email=f"socio{i}@test.com")

        response = client.get(API, params={"page": 1, "limit": 2})

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"data", "page", "limit", "total", "total_pages"}
        assert len(body["data"]) == 2
        assert body["total"] == 3
        assert body["total_pages"] == 2

    def test_get_unknown_member(self, client):
        response = client.get(f"{API}/9999")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_deactivate_and_reactivate(self, client):
        member_id = _register(client).json()["id"]

        assert client.post(f"{API}/{member_id}/deactivate").json()["is_active"] is False
        assert client.post(f"{API}/{member_id}/reactivate").json()["is_active"] is True


def test_health_and_timing_header(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["X-Process-Time"].endswith("ms")
