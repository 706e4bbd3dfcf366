"""Tests for the HTTP API."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from marketplace.api.auth import create_access_token, decode_token
from marketplace.api.config import Settings, get_settings
from marketplace.api.deps import get_marketplace
from marketplace.api.main import app
from marketplace.api.rate_limit import get_client_ip

API = "/api/v1"


def future_deadline(days: int = 7) -> str:
    """Helper to create a future deadline as an ISO string."""
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def headers_for(actor_id: str, roles=("seeker",)) -> dict:
    token = create_access_token(actor_id, get_settings(), roles=roles)
    return {"Authorization": f"Bearer {token}", "User-Agent": "pytest-client"}


@pytest.fixture
def client(marketplace):
    """Test client wired to the per-test marketplace."""
    app.dependency_overrides[get_marketplace] = lambda: marketplace
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeker_headers():
    return headers_for("seeker-1")


@pytest.fixture
def provider_headers():
    return headers_for("provider-1", ("seeker", "provider"))


@pytest.fixture
def provider2_headers():
    return headers_for("provider-2", ("seeker", "provider"))


@pytest.fixture
def admin_headers():
    return headers_for("admin-1", ("admin",))


def post_job(client, headers, **overrides) -> dict:
    body = {
        "title": "Fix leaking kitchen sink",
        "description": "The sink drips constantly",
        "category": "plumbing",
        "budget_min": 100,
        "budget_max": 500,
        "deadline": future_deadline(),
    }
    body.update(overrides)
    response = client.post(f"{API}/jobs", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestAuth:
    """Tests for token handling."""

    def test_token_roundtrip(self):
        settings = get_settings()
        token = create_access_token("user-1", settings, roles=["provider", "seeker"])
        payload = decode_token(token, settings)
        assert payload["sub"] == "user-1"
        assert payload["roles"] == ["provider", "seeker"]
        assert payload["type"] == "access"

    def test_missing_token(self, client):
        response = client.get(f"{API}/users/me")
        assert response.status_code == 401

    def test_garbage_token(self, client):
        response = client.get(
            f"{API}/users/me", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired token"

    def test_expired_token(self, client):
        token = create_access_token(
            "seeker-1", get_settings(), expires_delta=timedelta(seconds=-1)
        )
        response = client.get(f"{API}/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_first_request_registers_user(self, client, marketplace, provider_headers):
        """Users are created on first sight from token claims."""
        response = client.get(f"{API}/users/me", headers=provider_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "provider-1"
        assert sorted(data["roles"]) == ["provider", "seeker"]
        assert marketplace.users.get("provider-1").is_provider

    def test_non_admin_blocked_from_admin_routes(self, client, seeker_headers):
        response = client.get(f"{API}/admin/stats", headers=seeker_headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"


class TestRootEndpoints:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health(self, client, tmp_path, monkeypatch):
        monkeypatch.setenv("MARKETPLACE_DB_PATH", str(tmp_path / "health.db"))
        get_marketplace.cache_clear()
        try:
            response = client.get("/health")
        finally:
            get_marketplace.cache_clear()
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected"}


class TestJobRoutes:
    """Tests for /jobs."""

    def test_create_and_get(self, client, seeker_headers):
        job = post_job(client, seeker_headers, category="Plumbing")
        assert job["status"] == "open"
        assert job["category"] == "plumbing"
        assert job["budget"] == {"min": 100.0, "max": 500.0}
        assert job["seeker_id"] == "seeker-1"

        response = client.get(f"{API}/jobs/{job['id']}", headers=seeker_headers)
        assert response.status_code == 200
        assert response.json()["title"] == "Fix leaking kitchen sink"

    def test_past_deadline_is_422(self, client, seeker_headers):
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        response = client.post(
            f"{API}/jobs",
            json={
                "title": "Too late",
                "category": "plumbing",
                "budget_min": 1,
                "budget_max": 2,
                "deadline": past,
            },
            headers=seeker_headers,
        )
        assert response.status_code == 422

    def test_inverted_budget_is_422(self, client, seeker_headers):
        response = client.post(
            f"{API}/jobs",
            json={
                "title": "Backwards",
                "category": "plumbing",
                "budget_min": 500,
                "budget_max": 100,
                "deadline": future_deadline(),
            },
            headers=seeker_headers,
        )
        assert response.status_code == 422

    def test_inactive_category_is_400(self, client, seeker_headers):
        response = client.post(
            f"{API}/jobs",
            json={
                "title": "Read my stars",
                "category": "astrology",
                "budget_min": 1,
                "budget_max": 2,
                "deadline": future_deadline(),
            },
            headers=seeker_headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_missing_job_is_404(self, client, seeker_headers):
        response = client.get(f"{API}/jobs/nope", headers=seeker_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_list_filters(self, client, seeker_headers, provider_headers):
        mine = post_job(client, seeker_headers)
        post_job(client, provider_headers, category="cleaning", budget_min=10, budget_max=20)

        response = client.get(f"{API}/jobs", params={"mine": True}, headers=seeker_headers)
        assert [j["id"] for j in response.json()["jobs"]] == [mine["id"]]

        response = client.get(
            f"{API}/jobs", params={"category": "cleaning"}, headers=seeker_headers
        )
        assert [j["category"] for j in response.json()["jobs"]] == ["cleaning"]

        response = client.get(f"{API}/jobs", params={"min_budget": 100}, headers=seeker_headers)
        assert [j["id"] for j in response.json()["jobs"]] == [mine["id"]]
        assert response.json()["limit"] == 20

    def test_cancel_and_delete(self, client, seeker_headers, provider_headers):
        job = post_job(client, seeker_headers)
        response = client.post(f"{API}/jobs/{job['id']}/cancel", headers=provider_headers)
        assert response.status_code == 403

        response = client.post(
            f"{API}/jobs/{job['id']}/cancel",
            json={"reason": "No longer needed"},
            headers=seeker_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        response = client.delete(f"{API}/jobs/{job['id']}", headers=seeker_headers)
        assert response.status_code == 409

        other = post_job(client, seeker_headers)
        response = client.delete(f"{API}/jobs/{other['id']}", headers=seeker_headers)
        assert response.status_code == 204

    def test_patch_job(self, client, seeker_headers, provider_headers):
        job = post_job(client, seeker_headers)
        url = f"{API}/jobs/{job['id']}"

        response = client.patch(url, json={"title": "Replace tap"}, headers=provider_headers)
        assert response.status_code == 403

        response = client.patch(
            url, json={"title": "Replace tap", "budget_max": 350}, headers=seeker_headers
        )
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["title"] == "Replace tap"
        assert body["budget"] == {"min": 100.0, "max": 350.0}
        assert body["description"] == job["description"]

        response = client.patch(url, json={"budget_min": 400}, headers=seeker_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

        response = client.patch(url, json={"status": "completed"}, headers=seeker_headers)
        assert response.status_code == 400
        assert client.get(url, headers=seeker_headers).json()["status"] == "open"


class TestMarketplaceFlow:
    """End-to-end: post, bid, assign, complete, review, complain."""

    def test_full_flow(
        self,
        client,
        marketplace,
        seeker_headers,
        provider_headers,
        provider2_headers,
        admin_headers,
    ):
        job = post_job(client, seeker_headers)
        job_id = job["id"]

        # Offers
        response = client.post(
            f"{API}/jobs/{job_id}/offers",
            json={"budget": 300, "message": "Tomorrow morning", "estimated_days": 1},
            headers=provider_headers,
        )
        assert response.status_code == 201
        offer_a = response.json()

        response = client.post(
            f"{API}/jobs/{job_id}/offers", json={"budget": 450}, headers=provider2_headers
        )
        assert response.status_code == 201
        offer_b = response.json()

        response = client.post(
            f"{API}/jobs/{job_id}/offers", json={"budget": 600}, headers=provider2_headers
        )
        assert response.status_code in (400, 409)

        # Seeker sees every offer, a provider only their own
        response = client.get(f"{API}/jobs/{job_id}/offers", headers=seeker_headers)
        assert [o["id"] for o in response.json()] == [offer_a["id"], offer_b["id"]]
        response = client.get(f"{API}/jobs/{job_id}/offers", headers=provider2_headers)
        assert [o["id"] for o in response.json()] == [offer_b["id"]]
        response = client.get(f"{API}/offers/{offer_a['id']}", headers=provider2_headers)
        assert response.status_code == 403

        # Assign
        response = client.post(
            f"{API}/jobs/{job_id}/assign",
            json={"offer_id": offer_a["id"]},
            headers=provider_headers,
        )
        assert response.status_code == 403
        response = client.post(
            f"{API}/jobs/{job_id}/assign",
            json={"offer_id": offer_a["id"]},
            headers=seeker_headers,
        )
        assert response.status_code == 200
        assert response.json()["assigned_provider_id"] == "provider-1"

        response = client.post(
            f"{API}/jobs/{job_id}/assign",
            json={"offer_id": offer_b["id"]},
            headers=seeker_headers,
        )
        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

        response = client.get(
            f"{API}/offers/mine", params={"status": "rejected"}, headers=provider2_headers
        )
        assert [o["id"] for o in response.json()] == [offer_b["id"]]

        # Reviews before completion conflict
        response = client.post(
            f"{API}/jobs/{job_id}/reviews", json={"rating": 5}, headers=seeker_headers
        )
        assert response.status_code == 409

        # Complete
        response = client.post(
            f"{API}/jobs/{job_id}/complete",
            json={"images": ["https://files.example/after.jpg"], "description": "Fixed"},
            headers=provider_headers,
        )
        assert response.status_code == 200
        assert response.json()["completion_proof"]["description"] == "Fixed"

        history = client.get(f"{API}/jobs/{job_id}/history", headers=seeker_headers).json()
        assert [h["to_status"] for h in history] == ["open", "assigned", "completed"]

        # Review
        response = client.post(
            f"{API}/jobs/{job_id}/reviews",
            json={"rating": 4, "comment": "Good"},
            headers=seeker_headers,
        )
        assert response.status_code == 201
        assert response.json()["reviewed_user_id"] == "provider-1"

        response = client.post(
            f"{API}/jobs/{job_id}/reviews", json={"rating": 6}, headers=provider_headers
        )
        assert response.status_code == 422

        rating = client.get(f"{API}/users/provider-1/rating", headers=seeker_headers).json()
        assert rating["rating"] == 4.0
        assert rating["review_count"] == 1
        assert rating["total_jobs_completed"] == 1

        reviews = client.get(
            f"{API}/users/provider-1/reviews",
            params={"role": "provider"},
            headers=seeker_headers,
        ).json()
        assert len(reviews) == 1

        # Complaint and admin ban
        response = client.post(
            f"{API}/complaints",
            json={
                "job_request_id": job_id,
                "reported_user_id": "provider-1",
                "problem_type": "poor_quality",
                "description": "Still dripping",
            },
            headers=seeker_headers,
        )
        assert response.status_code == 201
        complaint = response.json()

        response = client.get(f"{API}/complaints/{complaint['id']}", headers=provider2_headers)
        assert response.status_code == 403

        response = client.post(
            f"{API}/admin/complaints/{complaint['id']}/actions",
            json={"status": "investigating", "expected_version": 1},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["version"] == 2

        response = client.post(
            f"{API}/admin/complaints/{complaint['id']}/actions",
            json={"admin_notes": "stale", "expected_version": 1},
            headers=admin_headers,
        )
        assert response.status_code == 409

        response = client.post(
            f"{API}/admin/complaints/{complaint['id']}/actions",
            json={"status": "resolved", "admin_action": "ban"},
            headers=admin_headers,
        )
        assert response.status_code == 200

        actions = client.get(
            f"{API}/admin/complaints/{complaint['id']}/actions", headers=admin_headers
        ).json()
        assert [a["action_type"] for a in actions] == ["investigate", "ban"]
        assert actions[0]["user_agent"] == "pytest-client"
        assert actions[0]["ip_address"]

        assert marketplace.users.get("provider-1").is_blocked

        stats = client.get(f"{API}/admin/stats", headers=admin_headers).json()
        assert stats["jobs"]["by_status"]["completed"] == 1
        assert stats["complaints"]["by_status"]["resolved"] == 1


class TestUpgradeRoutes:
    """Tests for /upgrades and the admin decision routes."""

    def test_upgrade_flow(self, client, marketplace, seeker_headers, admin_headers):
        response = client.post(
            f"{API}/upgrades",
            json={"attachments": ["https://files.example/license.pdf"], "comment": "Hi"},
            headers=seeker_headers,
        )
        assert response.status_code == 201
        request_id = response.json()["id"]

        response = client.post(
            f"{API}/upgrades",
            json={"attachments": ["https://files.example/again.pdf"]},
            headers=seeker_headers,
        )
        assert response.status_code == 409

        pending = client.get(
            f"{API}/admin/upgrades", params={"status": "pending"}, headers=admin_headers
        ).json()
        assert [u["id"] for u in pending] == [request_id]

        response = client.post(
            f"{API}/admin/upgrades/{request_id}/accept",
            json={"admin_explanation": "Verified license"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "accepted"
        assert marketplace.users.get("seeker-1").is_provider

        mine = client.get(f"{API}/upgrades/mine", headers=seeker_headers).json()
        assert mine[0]["viewed_by_user"] is False
        response = client.post(f"{API}/upgrades/mine/viewed", headers=seeker_headers)
        assert response.json() == {"updated": 1}

    def test_empty_attachments_is_422(self, client, seeker_headers):
        response = client.post(
            f"{API}/upgrades", json={"attachments": []}, headers=seeker_headers
        )
        assert response.status_code == 422

    def test_verify_and_recompute(self, client, marketplace, provider_headers, admin_headers):
        client.get(f"{API}/users/me", headers=provider_headers)
        response = client.post(
            f"{API}/admin/users/provider-1/verify", json={"verified": True}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["provider_profile"]["verified"] is True

        response = client.post(f"{API}/admin/ratings/recompute", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["recomputed"] >= 2


class TestOfferEditRoutes:
    """PATCH and DELETE on /offers/{offer_id}."""

    def submit(self, client, job_id, headers, budget=300):
        response = client.post(
            f"{API}/jobs/{job_id}/offers", json={"budget": budget}, headers=headers
        )
        assert response.status_code == 201, response.text
        return response.json()

    def test_patch_offer(self, client, seeker_headers, provider_headers, provider2_headers):
        job = post_job(client, seeker_headers)
        offer = self.submit(client, job["id"], provider_headers)
        url = f"{API}/offers/{offer['id']}"

        response = client.patch(url, json={"budget": 250}, headers=provider2_headers)
        assert response.status_code == 403

        response = client.patch(
            url, json={"budget": 250, "message": "Can start today"}, headers=provider_headers
        )
        assert response.status_code == 200, response.text
        assert (response.json()["budget"], response.json()["message"]) == (250.0, "Can start today")

        response = client.patch(url, json={"budget": 900}, headers=provider_headers)
        assert response.status_code == 400

    def test_withdraw_offer(self, client, seeker_headers, provider_headers):
        job = post_job(client, seeker_headers)
        offer = self.submit(client, job["id"], provider_headers)
        url = f"{API}/offers/{offer['id']}"

        response = client.delete(url, headers=seeker_headers)
        assert response.status_code == 403

        response = client.delete(url, headers=provider_headers)
        assert response.status_code == 204
        assert client.get(url, headers=provider_headers).status_code == 404

    def test_accepted_offer_is_locked(self, client, seeker_headers, provider_headers):
        job = post_job(client, seeker_headers)
        offer = self.submit(client, job["id"], provider_headers)
        response = client.post(
            f"{API}/jobs/{job['id']}/assign",
            json={"offer_id": offer["id"]},
            headers=seeker_headers,
        )
        assert response.status_code == 200

        url = f"{API}/offers/{offer['id']}"
        assert client.patch(url, json={"budget": 200}, headers=provider_headers).status_code == 409
        assert client.delete(url, headers=provider_headers).status_code == 409


class TestClientIp:
    """X-Forwarded-For is honoured only from trusted proxies."""

    def request_from(self, peer, forwarded=None):
        headers = {"x-forwarded-for": forwarded} if forwarded else {}
        return SimpleNamespace(client=SimpleNamespace(host=peer), headers=headers)

    def settings(self, trusted):
        return Settings(jwt_secret_key="unused", trusted_proxies=trusted)

    def test_direct_client_cannot_spoof(self):
        request = self.request_from("203.0.113.50", "198.51.100.1")
        assert get_client_ip(request, self.settings(["127.0.0.1/32"])) == "203.0.113.50"

    def test_trusted_proxy_forwards_first_hop(self):
        request = self.request_from("10.1.2.3", "198.51.100.1, 10.1.2.3")
        assert get_client_ip(request, self.settings(["10.0.0.0/8"])) == "198.51.100.1"

    def test_trusted_proxy_without_header(self):
        request = self.request_from("127.0.0.1")
        assert get_client_ip(request, self.settings(["127.0.0.1"])) == "127.0.0.1"

    def test_invalid_entries_are_skipped(self, caplog):
        request = self.request_from("10.1.2.3", "198.51.100.1")
        assert get_client_ip(request, self.settings(["not-a-cidr", "10.0.0.0/8"])) == "198.51.100.1"
        assert "not-a-cidr" in caplog.text

    def test_non_ip_peer_passes_through(self):
        assert get_client_ip(self.request_from("testclient"), self.settings([])) == "testclient"
