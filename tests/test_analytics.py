from decimal import Decimal

from fastapi.testclient import TestClient

from marketplace_app.models import DailyAnalytics


class TestAnalyticsApi:

    def test_application_rows_after_clicks(self, client: TestClient, approved_application):
        code = approved_application.tracking_code
        for ip in ("1.2.3.4", "1.2.3.4", "203.0.113.5"):
            client.get(f"/track/{code}", headers={"X-Forwarded-For": ip}, follow_redirects=False)

        response = client.get(f"/api/v1/analytics/applications/{approved_application.id}")

        assert response.status_code == 200
        rows = response.json()
        assert len(rows) == 1
        assert rows[0]["clicks"] == 3
        assert rows[0]["uniqueClicks"] == 2
        assert rows[0]["conversions"] == 0

    def test_unknown_application_has_no_rows(self, client: TestClient):
        assert client.get("/api/v1/analytics/applications/nope").json() == []

    def test_creator_totals(self, client: TestClient, db_session, approved_application):
        code = approved_application.tracking_code
        client.get(f"/track/{code}", headers={"X-Forwarded-For": "1.2.3.4"}, follow_redirects=False)

        db_session.expire_all()
        row = db_session.query(DailyAnalytics).one()
        row.conversions = 2
        row.earnings = Decimal("12.50")
        db_session.commit()

        response = client.get("/api/v1/analytics/creators/creator-user-1")

        assert response.status_code == 200
        data = response.json()
        assert data["totalClicks"] == 1
        assert data["uniqueClicks"] == 1
        assert data["conversions"] == 2
        assert Decimal(str(data["totalEarnings"])) == Decimal("12.50")

    def test_creator_without_clicks(self, client: TestClient):
        data = client.get("/api/v1/analytics/creators/newcomer").json()
        assert data["totalClicks"] == 0
        assert Decimal(str(data["totalEarnings"])) == Decimal("0")


class TestServiceEndpoints:

    def test_root(self, client: TestClient):
        response = client.get("/")
        assert response.status_code == 200
        assert "Creator Marketplace" in response.json()["message"]

    def test_health(self, client: TestClient):
        response = client.get("/health")
        assert response.json()["status"] == "healthy"
