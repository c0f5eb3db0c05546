API = "/api/v1/marketing"

CAMPAIGN = {"name": "Reto de verano", "content": "Hola {{first_name}}, apúntate al reto"}


class TestMarketingEndpoints:

    def test_create_and_get_campaign(self, client):
        response = client.post(f"{API}/campaigns", json=CAMPAIGN)

        assert response.status_code == 201
        campaign = response.json()
        assert campaign["status"] == "DRAFT"
        assert campaign["audience"] == "ALL_MEMBERS"
        assert client.get(f"{API}/campaigns/{campaign['id']}").json()["name"] == "Reto de verano"

    def test_custom_audience_without_members_is_rejected(self, client):
        response = client.post(f"{API}/campaigns", json={**CAMPAIGN, "audience": "CUSTOM"})

        assert response.status_code == 422

    def test_send_then_list_with_recipient_count(self, client, make_member):
        make_member()
        make_member()
        campaign = client.post(f"{API}/campaigns", json=CAMPAIGN).json()

        response = client.post(f"{API}/campaigns/{campaign['id']}/send")

        assert response.status_code == 200
        result = response.json()
        assert result["status"] == "SENT"
        assert result["delivered_count"] == 2
        listing = client.get(f"{API}/campaigns", params={"status": "SENT"}).json()
        assert listing["total"] == 1
        assert listing["data"][0]["recipients_count"] == 2

    def test_sending_twice_returns_409(self, client, member):
        campaign = client.post(f"{API}/campaigns", json=CAMPAIGN).json()
        client.post(f"{API}/campaigns/{campaign['id']}/send")

        response = client.post(f"{API}/campaigns/{campaign['id']}/send")

        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_STATE_TRANSITION"

    def test_empty_audience_returns_422(self, client):
        campaign = client.post(f"{API}/campaigns", json=CAMPAIGN).json()

        response = client.post(f"{API}/campaigns/{campaign['id']}/send")

        assert response.status_code == 422
        assert client.get(f"{API}/campaigns/{campaign['id']}").json()["status"] == "FAILED"

    def test_log_events_and_read_analytics(self, client, make_member):
        make_member()
        make_member()
        campaign = client.post(f"{API}/campaigns", json=CAMPAIGN).json()
        client.post(f"{API}/campaigns/{campaign['id']}/send")
        recipients = client.get(f"{API}/campaigns/{campaign['id']}/recipients").json()["data"]

        response = client.post(
            f"{API}/campaigns/{campaign['id']}/recipients/{recipients[0]['id']}/events",
            json={"event_type": "CLICKED"}
        )

        assert response.status_code == 201
        assert response.json()["event_type"] == "CLICKED"
        analytics = client.get(f"{API}/campaigns/{campaign['id']}/analytics").json()
        assert analytics["delivered_count"] == 2
        assert analytics["opened_count"] == 1
        assert analytics["clicked_count"] == 1
        assert analytics["open_rate"] == 50.0
        events = client.get(
            f"{API}/campaigns/{campaign['id']}/recipients/{recipients[0]['id']}/events"
        ).json()
        assert [e["event_type"] for e in events] == ["DELIVERED", "CLICKED"]

    def test_unknown_campaign_returns_404(self, client):
        assert client.get(f"{API}/campaigns/999").status_code == 404
        assert client.get(f"{API}/campaigns/999/analytics").status_code == 404

    def test_cancel_draft(self, client):
        campaign = client.post(f"{API}/campaigns", json=CAMPAIGN).json()

        response = client.patch(f"{API}/campaigns/{campaign['id']}", json={"status": "CANCELLED"})

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

    def test_run_automations(self, client, member):
        response = client.post(f"{API}/automations/run")

        assert response.status_code == 200
        assert response.json()["reengagement_sent"] == 1
