API = "/api/v1/attendance"


class TestAttendanceEndpoints:

    def test_check_in_requires_membership(self, client, member):
        response = client.post(f"{API}/check-in", json={"member_id": member.id})

        assert response.status_code == 403
        assert response.json()["code"] == "ACCESS_DENIED"

    def test_check_in_and_out(self, client, member, give_membership):
        give_membership(member.id)

        checked_in = client.post(f"{API}/check-in", json={"member_id": member.id})
        assert checked_in.status_code == 201
        assert checked_in.json()["method"] == "MANUAL"
        assert checked_in.json()["check_out_time"] is None

        duplicate = client.post(f"{API}/check-in", json={"member_id": member.id})
        assert duplicate.status_code == 409

        checked_out = client.post(f"{API}/members/{member.id}/check-out")
        assert checked_out.status_code == 200
        assert checked_out.json()["check_out_time"] is not None
        assert checked_out.json()["duration_minutes"] == 0

    def test_qr_check_in(self, client, member, give_membership):
        give_membership(member.id)

        response = client.post(f"{API}/qr-check-in", json={"qr_code": member.qr_code_token})

        assert response.status_code == 201
        assert response.json()["method"] == "QR"
        assert response.json()["member_id"] == member.id

    def test_class_attendance_requires_schedule(self, client, member):
        response = client.post(f"{API}/check-in", json={"member_id": member.id, "type": "CLASS_ATTENDANCE"})

        assert response.status_code == 422

    def test_list_attendance_filters_by_member(self, client, make_member, give_membership):
        first, second = make_member(), make_member()
        for m in (first, second):
            give_membership(m.id)
            client.post(f"{API}/check-in", json={"member_id": m.id})

        response = client.get(API, params={"member_id": first.id})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["data"][0]["member_id"] == first.id

    def test_reports(self, client, member, give_membership):
        give_membership(member.id)
        client.post(f"{API}/check-in", json={"member_id": member.id})

        member_report = client.get(f"{API}/report/members/{member.id}", params={"days": 7})
        assert member_report.status_code == 200
        assert member_report.json()["total_visits"] == 1

        gym_report = client.get(f"{API}/report/gym", params={"days": 7})
        assert gym_report.status_code == 200
        assert gym_report.json()["unique_members"] == 1
        assert gym_report.json()["timezone"] == "UTC"

    def test_report_rejects_inverted_range(self, client):
        response = client.get(
            f"{API}/report/gym", params={"start_date": "2026-03-10", "end_date": "2026-03-01"}
        )

        assert response.status_code == 422
