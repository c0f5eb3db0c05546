API = "/api/v1/retention"


class TestRetentionEndpoints:

    def test_recalculate_and_overview(self, client, make_member, give_membership):
        make_member()
        regular = make_member()
        give_membership(regular.id)
        client.post("/api/v1/attendance/check-in", json={"member_id": regular.id})

        response = client.post(f"{API}/recalculate")

        assert response.status_code == 200
        result = response.json()
        assert result["processed"] == 2
        assert (result["high"], result["low"]) == (1, 1)

        overview = client.get(f"{API}/overview").json()
        assert overview["evaluated_members"] == 2
        assert overview["open_tasks"] == 1

    def test_list_members_by_risk_level(self, client, make_member):
        absent = make_member()
        client.post(f"{API}/recalculate", json={})

        response = client.get(f"{API}/members", params={"risk_level": "HIGH"})

        assert response.status_code == 200
        assert [r["member_id"] for r in response.json()["data"]] == [absent.id]
        assert response.json()["data"][0]["reasons"]

    def test_unevaluated_member_returns_404(self, client, member):
        response = client.get(f"{API}/members/{member.id}")

        assert response.status_code == 404

    def test_resolve_task(self, client, member):
        client.post(f"{API}/recalculate")
        task = client.get(f"{API}/tasks", params={"status": "OPEN"}).json()["data"][0]

        response = client.patch(f"{API}/tasks/{task['id']}", json={"status": "DONE", "notes": "Renovará"})

        assert response.status_code == 200
        assert response.json()["status"] == "DONE"
        assert response.json()["resolved_at"] is not None
        assert client.get(f"{API}/overview").json()["open_tasks"] == 0
