"""
Tests for the referral HTTP API.

Tests focus on:
- Public validation and program listing
- Owner-only configuration and admin endpoints
- Authenticated account endpoints and status code mapping
"""
import pytest
from starlette.requests import Request

from referral_engine.api.rate_limit import rate_limit_key
from referral_engine.settings import settings

BASE = "/api/v1/referrals"


@pytest.fixture
def owner(seed_account):
    return seed_account(first_name="Olga", is_owner=True, email="owner@example.com")


@pytest.fixture
def referrer(seed_account):
    return seed_account(first_name="John", referral_code="JOHN1234", email="john@example.com")


@pytest.fixture
def service(client):
    return client.app.state.referral_service


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Frame-Options"] == "DENY"


class TestValidate:
    """GET /validate/{code}"""

    def test_valid_code(self, client, referrer, seed_config):
        """Should return 200 with the referrer's first name and rewards"""
        seed_config(client_to_client={"enabled": True})

        response = client.get(f"{BASE}/validate/john1234", params={"user_type": "homeowner"})

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is True
        assert body["referrer"] == {"first_name": "John"}
        assert body["program_type"] == "client_to_client"
        assert body["rewards"] == {
            "referrer_reward": 2500,
            "referred_reward": 2500,
            "cleanings_required": 1,
        }

    def test_invalid_code(self, client, referrer):
        """Should return 400 with the error code"""
        response = client.get(f"{BASE}/validate/JOHN1234")

        assert response.status_code == 400
        assert response.json()["valid"] is False
        assert response.json()["error_code"] == "PROGRAM_INACTIVE"

    def test_store_failure(self, client, service, monkeypatch):
        """Should return 500 SERVER_ERROR when validation blows up"""
        def broken(*args, **kwargs):
            raise RuntimeError("database is down")

        monkeypatch.setattr(service, "validate_code", broken)

        response = client.get(f"{BASE}/validate/JOHN1234")

        assert response.status_code == 500
        assert response.json()["error_code"] == "SERVER_ERROR"


class TestCurrentPrograms:
    """GET /current"""

    def test_no_config(self, client):
        response = client.get(f"{BASE}/current")

        assert response.json() == {"active": False, "programs": []}

    def test_enabled_programs(self, client, seed_config):
        """Should describe only enabled programs"""
        seed_config(client_to_client={"enabled": True}, cleaner_to_client={"enabled": True})

        body = client.get(f"{BASE}/current").json()

        assert body["active"] is True
        assert [p["type"] for p in body["programs"]] == ["client_to_client", "cleaner_to_client"]
        assert body["programs"][0]["description"] == "Give $25.00, Get $25.00"
        assert body["programs"][1]["description"] == "Refer 3 clients for a 10% discount"


class TestOwnerEndpoints:
    """Configuration and admin endpoints"""

    def test_requires_token(self, client):
        assert client.get(f"{BASE}/config").status_code == 401

    def test_rejects_bad_token(self, client):
        response = client.get(f"{BASE}/config", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_requires_owner(self, client, referrer, auth_headers):
        assert client.get(f"{BASE}/config", headers=auth_headers(referrer.id)).status_code == 403

    def test_defaults_before_first_update(self, client, owner, auth_headers):
        body = client.get(f"{BASE}/config", headers=auth_headers(owner.id)).json()

        assert body["source"] == "defaults"
        assert body["config"] is None
        assert body["formatted_config"]["client_to_cleaner"]["referrer_reward"] == 5000

    def test_update_config(self, client, owner, auth_headers):
        """Should store a snapshot attributed to the owner"""
        headers = auth_headers(owner.id)
        response = client.put(
            f"{BASE}/config",
            headers=headers,
            json={
                "client_to_client": {"enabled": True, "referrer_reward": 3000, "max_per_month": None},
                "change_note": "Spring promo",
            },
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["config"]["updated_by_id"] == owner.id

        body = client.get(f"{BASE}/config", headers=headers).json()
        assert body["source"] == "database"
        assert body["formatted_config"]["client_to_client"]["referrer_reward"] == 3000

        history = client.get(f"{BASE}/history", headers=headers).json()
        assert history["count"] == 1
        assert history["history"][0]["change_note"] == "Spring promo"
        assert history["history"][0]["updated_by"]["first_name"] == "Olga"

    def test_update_requires_a_program(self, client, owner, auth_headers):
        response = client.put(f"{BASE}/config", headers=auth_headers(owner.id), json={"change_note": "x"})

        assert response.status_code == 400

    @pytest.mark.parametrize(
        "settings_update",
        [
            {"referrer_reward": -1},
            {"cleanings_required": 0},
            {"max_per_month": 0},
            {"no_such_setting": 1},
        ],
    )
    def test_update_validation(self, client, owner, auth_headers, settings_update):
        response = client.put(
            f"{BASE}/config",
            headers=auth_headers(owner.id),
            json={"client_to_client": settings_update},
        )

        assert response.status_code == 422

    def test_setting_not_available_for_program(self, client, owner, auth_headers):
        """Should reject a known setting that the program does not have"""
        response = client.put(
            f"{BASE}/config",
            headers=auth_headers(owner.id),
            json={"client_to_cleaner": {"referred_reward": 100}},
        )

        assert response.status_code == 400

    def test_all_referrals_and_status(self, client, service, owner, referrer, seed_account, seed_config, auth_headers):
        """Should list referrals and map status errors to 404/400"""
        seed_config(client_to_client={"enabled": True})
        friend = seed_account(first_name="Kim")
        result, referral = service.register_signup("JOHN1234", friend.id)
        assert result.valid
        headers = auth_headers(owner.id)

        listing = client.get(f"{BASE}/all", headers=headers, params={"status": "pending"}).json()
        assert listing["count"] == 1
        assert listing["referrals"][0]["referrer"]["first_name"] == "John"
        assert listing["referrals"][0]["referred"]["id"] == friend.id

        assert client.patch(f"{BASE}/999/status", headers=headers, json={"status": "expired"}).status_code == 404
        assert client.patch(
            f"{BASE}/{referral.id}/status", headers=headers, json={"status": "bogus"}
        ).status_code == 400

        response = client.patch(f"{BASE}/{referral.id}/status", headers=headers, json={"status": "rewarded"})
        assert response.status_code == 200
        assert response.json()["referral"]["status"] == "rewarded"
        assert response.json()["referral"]["referrer_reward_applied"] is True

        response = client.patch(f"{BASE}/{referral.id}/status", headers=headers, json={"status": "pending"})
        assert response.status_code == 400
        assert "Cannot change referral status" in response.json()["detail"]

        assert client.get(f"{BASE}/all", headers=headers, params={"status": "pending"}).json()["count"] == 0


class TestAccountEndpoints:
    """Endpoints for any authenticated account"""

    def test_my_code_generates_once(self, client, seed_account, seed_config, auth_headers):
        """Should lazily create a code and keep returning it"""
        seed_config(client_to_client={"enabled": True}, cleaner_to_cleaner={"enabled": True})
        account = seed_account(first_name="Priya")
        headers = auth_headers(account.id)

        first = client.get(f"{BASE}/my-code", headers=headers).json()
        second = client.get(f"{BASE}/my-code", headers=headers).json()

        assert first["referral_code"].startswith("PRIY")
        assert first["referral_code"] == second["referral_code"]
        assert settings.brand_name in first["share_message"]
        assert [p["type"] for p in first["programs"]] == ["client_to_client"]

    def test_my_referrals(self, client, service, referrer, seed_account, seed_config, auth_headers):
        seed_config(client_to_client={"enabled": True})
        friend = seed_account(first_name="Kim")
        service.register_signup("JOHN1234", friend.id)
        service.process_completion(1, friend.id)

        body = client.get(f"{BASE}/my-referrals", headers=auth_headers(referrer.id)).json()

        assert body["referral_code"] == "JOHN1234"
        assert body["available_credits"] == 2500
        assert body["stats"]["rewarded"] == 1
        assert body["stats"]["total_earned"] == 2500
        assert body["referrals"][0]["referred"] == {"first_name": "Kim", "type": "homeowner"}
        assert body["referrals"][0]["reward_applied"] is True

    def test_my_credits(self, client, seed_account, auth_headers):
        account = seed_account(credits=2550)

        body = client.get(f"{BASE}/my-credits", headers=auth_headers(account.id)).json()

        assert body == {"available_credits": 2550, "available_dollars": "25.50"}

    def test_apply_credits(self, client, seed_account, seed_appointment, auth_headers):
        """Should apply credits and report the new price"""
        account = seed_account(credits=2500)
        appointment = seed_appointment(account.id, price_cents=10000)

        response = client.post(
            f"{BASE}/apply-credits",
            headers=auth_headers(account.id),
            json={"appointment_id": appointment.id, "amount": 1000},
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "amount_applied": 1000,
            "amount_applied_dollars": "10.00",
            "remaining_credits": 1500,
            "new_price_cents": 9000,
        }

    def test_apply_credits_without_balance(self, client, service, seed_account, seed_appointment, auth_headers):
        """Should return 400 and leave the appointment price alone"""
        account = seed_account(credits=0)
        appointment = seed_appointment(account.id, price_cents=10000)

        response = client.post(
            f"{BASE}/apply-credits",
            headers=auth_headers(account.id),
            json={"appointment_id": appointment.id},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "No credits available to apply"
        assert service.available_credits(account.id) == 0

    def test_share(self, client, seed_account, auth_headers):
        account = seed_account()

        response = client.post(f"{BASE}/share", headers=auth_headers(account.id), json={"platform": "sms"})

        assert response.json() == {"success": True}


class TestRateLimitKey:
    """Bucketing for the shared limiter"""

    @staticmethod
    def _request(headers=None):
        return Request({
            "type": "http",
            "headers": [(name.lower().encode(), value.encode()) for name, value in (headers or {}).items()],
            "client": ("203.0.113.9", 5000),
        })

    def test_authenticated_caller_keyed_by_account(self, auth_headers):
        assert rate_limit_key(self._request(auth_headers(42))) == "account:42"

    def test_anonymous_caller_keyed_by_address(self):
        assert rate_limit_key(self._request()) == "203.0.113.9"

    def test_bad_token_falls_back_to_address(self):
        request = self._request({"Authorization": "Bearer not-a-jwt"})

        assert rate_limit_key(request) == "203.0.113.9"
