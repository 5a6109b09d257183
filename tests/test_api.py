"""
Tests for the request layer: payload validation, status codes and tenancy.
"""

import pytest


@pytest.fixture
def handler(application):
    return application.handler


@pytest.fixture
def integration_id(handler):
    response = handler.create_integration({"name": "OpenAI prod", "type": "openai", "apiKey": "sk-test"})
    assert response.status == 200
    return response.body["id"]


def bearer(application, email):
    response = application.handler.signup({"name": "User", "email": email, "password": "pw"})
    return f"Bearer {response.body['token']}"


class TestIntegrationEndpoints:
    """Test integration operations."""

    def test_create_and_get(self, handler, integration_id):
        """Created integrations can be fetched."""
        response = handler.get_integration(integration_id)

        assert response.status == 200
        assert response.body["name"] == "OpenAI prod"
        assert response.body["apiKey"] == "sk-test"

    def test_create_missing_field(self, handler):
        """Missing fields are a 400."""
        response = handler.create_integration({"name": "x", "type": "openai"})

        assert response.status == 400
        assert "apiKey" in response.body["message"]

    def test_create_non_object_body(self, handler):
        """Bodies must be objects."""
        assert handler.create_integration(["x"]).status == 400

    def test_get_unknown(self, handler):
        """Unknown ids are a 404."""
        response = handler.get_integration("nonexistent")

        assert response.status == 404
        assert response.body == {"message": "Integration not found"}

    def test_update_type_rejected(self, handler, integration_id):
        """Changing the type is a 400."""
        response = handler.update_integration(integration_id, {"type": "anthropic"})

        assert response.status == 400
        assert response.body == {"message": "Integration type cannot be changed"}

    def test_update_name(self, handler, integration_id):
        """Names can change."""
        response = handler.update_integration(integration_id, {"name": "Renamed"})

        assert response.status == 200
        assert response.body["name"] == "Renamed"

    def test_delete(self, handler, integration_id):
        """Deleting acknowledges, then the id is gone."""
        assert handler.delete_integration(integration_id).body == {"message": "Integration deleted"}
        assert handler.delete_integration(integration_id).status == 404

    def test_list(self, handler, integration_id):
        """All integrations of the anonymous owner are listed."""
        response = handler.list_integrations()

        assert response.status == 200
        assert [i["id"] for i in response.body] == [integration_id]


class TestUsageEndpoints:
    """Test usage operations."""

    def test_record_and_get(self, handler, integration_id):
        """Recorded usage comes back in wire form."""
        response = handler.record_usage(integration_id, {"date": "2025-09-03", "usage": 100, "cost": 10})

        assert response.status == 200
        assert response.body == {"message": "Usage recorded"}
        assert handler.get_usage(integration_id).body == [{"date": "2025-09-03", "usage": 100.0, "cost": 10.0}]

    def test_record_unknown_integration(self, handler):
        """Recording against an unknown integration is a 404."""
        response = handler.record_usage("nonexistent-integration", {"date": "2025-09-03", "usage": 100, "cost": 10})

        assert response.status == 404
        assert response.body == {"message": "Integration does not exist"}

    @pytest.mark.parametrize("body", [
        {"date": "2025-09-03", "usage": -1, "cost": 10},
        {"date": "2025-09-03", "usage": "100", "cost": 10},
        {"date": "2025-09-03", "usage": True, "cost": 10},
        {"usage": 1, "cost": 1},
        {"date": "2025-09-03", "usage": 1, "cost": 1, "note": "x"},
        {"date": "2025-09-03", "usage": float("nan"), "cost": 1},
        {"date": "2025-09-03", "usage": 1, "cost": float("inf")},
    ])
    def test_record_invalid_payload(self, handler, integration_id, body):
        """Bad usage payloads are a 400 and store nothing."""
        assert handler.record_usage(integration_id, body).status == 400
        assert handler.get_usage(integration_id).body == []

    def test_get_unknown_integration_is_empty(self, handler):
        """Unknown integrations have no usage."""
        response = handler.get_usage("nonexistent")

        assert response.status == 200
        assert response.body == []

    def test_range_query(self, handler, integration_id):
        """Range queries need both bounds."""
        handler.record_usage(integration_id, {"date": "2025-09-03", "usage": 1, "cost": 1})

        ok = handler.get_usage_range(integration_id, {"start": "2025-09-01", "end": "2025-09-30"})
        missing = handler.get_usage_range(integration_id, {"start": "2025-09-01"})

        assert ok.status == 200 and len(ok.body) == 1
        assert missing.status == 400

    def test_update_and_delete_by_position(self, handler, integration_id):
        """Positional update and delete map misses to 404."""
        handler.record_usage(integration_id, {"date": "2025-09-03", "usage": 100, "cost": 10})

        updated = handler.update_usage(integration_id, "0", {"cost": 15})
        assert updated.status == 200
        assert updated.body["cost"] == 15.0

        missing = handler.update_usage(integration_id, "999", {"cost": 15})
        assert missing.status == 404
        assert missing.body == {"message": "Usage entry not found"}

        assert handler.delete_usage(integration_id, "0").status == 200
        assert handler.get_usage(integration_id).body == []
        assert handler.delete_usage(integration_id, "0").status == 404

    def test_position_uses_leading_integer(self, handler, integration_id):
        """Ids like "0abc" and "0.0" address position 0; "abc" is a 404."""
        handler.record_usage(integration_id, {"date": "2025-09-03", "usage": 100, "cost": 10})

        assert handler.update_usage(integration_id, "0abc", {"cost": 15}).body["cost"] == 15.0
        assert handler.update_usage(integration_id, "abc", {"cost": 20}).status == 404
        assert handler.delete_usage(integration_id, "0.0").status == 200
        assert handler.get_usage(integration_id).body == []


class TestAlertEndpoints:
    """Test alert operations."""

    def test_create_alert(self, handler, integration_id):
        """Alerts are created untriggered."""
        response = handler.create_alert({
            "integrationId": integration_id,
            "threshold": 100,
            "type": "cost",
            "notificationMethod": "email",
        })

        assert response.status == 200
        assert response.body["triggered"] is False
        assert response.body["integrationId"] == integration_id

    def test_create_alert_missing_integration(self, handler):
        """Alerts for unknown integrations are a 404."""
        response = handler.create_alert({
            "integrationId": "nonexistent-integration",
            "threshold": 100,
            "type": "cost",
            "notificationMethod": "email",
        })

        assert response.status == 404
        assert response.body == {"message": "Integration does not exist"}

    def test_create_alert_invalid_enum(self, handler, integration_id):
        """Unknown alert types are a 400."""
        response = handler.create_alert({
            "integrationId": integration_id,
            "threshold": 100,
            "type": "requests",
            "notificationMethod": "email",
        })

        assert response.status == 400

    def test_create_alert_non_finite_threshold(self, handler, integration_id):
        """NaN and infinite thresholds are a 400."""
        for threshold in (float("nan"), float("inf")):
            response = handler.create_alert({
                "integrationId": integration_id,
                "threshold": threshold,
                "type": "cost",
                "notificationMethod": "email",
            })

            assert response.status == 400
            assert response.body == {"message": "'threshold' must be a number"}

    def test_alert_triggers_through_usage(self, handler, integration_id):
        """Recording usage flips the alert."""
        alert_id = handler.create_alert({
            "integrationId": integration_id,
            "threshold": 100,
            "type": "usage",
            "notificationMethod": "slack",
        }).body["id"]

        handler.record_usage(integration_id, {"date": "2025-09-03", "usage": 100, "cost": 1})

        assert handler.get_alert(alert_id).body["triggered"] is True

    def test_update_alert_restrictions(self, handler, integration_id):
        """Only threshold and notification method can change."""
        alert_id = handler.create_alert({
            "integrationId": integration_id,
            "threshold": 100,
            "type": "cost",
            "notificationMethod": "email",
        }).body["id"]

        assert handler.update_alert(alert_id, {"threshold": 50}).body["threshold"] == 50.0
        assert handler.update_alert(alert_id, {"type": "usage"}).status == 400
        assert handler.update_alert(alert_id, {"triggered": False}).status == 400
        assert handler.update_alert("nonexistent", {"threshold": 1}).status == 404

    def test_delete_alert(self, handler, integration_id):
        """Alert deletion acknowledges, then 404s."""
        alert_id = handler.create_alert({
            "integrationId": integration_id,
            "threshold": 100,
            "type": "cost",
            "notificationMethod": "email",
        }).body["id"]

        assert handler.delete_alert(alert_id).body == {"message": "Alert deleted"}
        assert handler.get_alert(alert_id).body == {"message": "Alert not found"}


class TestUserAndAuthEndpoints:
    """Test user management and authentication operations."""

    def test_create_user_hides_hash(self, handler):
        """User responses never include the password hash."""
        response = handler.create_user({"name": "A", "email": "a@x.com", "password": "p"})

        assert response.status == 200
        assert set(response.body) == {"id", "name", "email"}

    def test_create_user_missing_fields(self, handler):
        """Missing fields are a 400 with a fixed message."""
        response = handler.create_user({"name": "A", "email": "a@x.com"})

        assert response.status == 400
        assert response.body == {"message": "Missing required fields"}

    def test_signup_duplicate(self, handler):
        """Duplicate emails are a 400."""
        handler.signup({"name": "A", "email": "a@x.com", "password": "p"})

        response = handler.signup({"name": "B", "email": "a@x.com", "password": "q"})

        assert response.status == 400
        assert response.body == {"message": "Email already registered"}

    def test_login(self, handler):
        """Good credentials yield a token pair; bad ones a 401."""
        handler.signup({"name": "A", "email": "a@x.com", "password": "p"})

        ok = handler.login({"email": "a@x.com", "password": "p"})
        bad = handler.login({"email": "a@x.com", "password": "wrong"})

        assert ok.status == 200
        assert set(ok.body) == {"token", "refreshToken"}
        assert bad.status == 401
        assert bad.body == {"message": "Invalid credentials"}

    def test_refresh(self, handler):
        """Refresh accepts only refresh tokens."""
        pair = handler.signup({"name": "A", "email": "a@x.com", "password": "p"}).body

        ok = handler.refresh({"refreshToken": pair["refreshToken"]})
        wrong_kind = handler.refresh({"refreshToken": pair["token"]})
        missing = handler.refresh({})

        assert ok.status == 200 and ok.body["token"]
        assert wrong_kind.status == 401
        assert wrong_kind.body == {"message": "Invalid refresh token"}
        assert missing.status == 401

    def test_logout(self, handler):
        """Logout always acknowledges."""
        assert handler.logout().body == {"message": "Logged out"}

    def test_user_crud(self, handler):
        """Users can be read, updated and deleted."""
        user_id = handler.create_user({"name": "A", "email": "a@x.com", "password": "p"}).body["id"]

        assert handler.get_user(user_id).body["email"] == "a@x.com"
        assert handler.update_user(user_id, {"name": "Alicia"}).body["name"] == "Alicia"
        assert handler.update_user(user_id, {"password": "x"}).status == 400
        assert handler.delete_user(user_id).body == {"message": "User deleted"}
        assert handler.get_user(user_id).body == {"message": "User not found"}


class TestMultiTenancy:
    """Test owner scoping when tenancy is multi."""

    def test_requires_token(self, multi_tenant_application):
        """Integration operations without a token are a 401."""
        response = multi_tenant_application.handler.list_integrations()

        assert response.status == 401
        assert response.body == {"message": "Unauthorized"}

    def test_rejects_bad_token(self, multi_tenant_application):
        """Invalid bearer tokens are a 401."""
        assert multi_tenant_application.handler.list_integrations("Bearer nope").status == 401
        assert multi_tenant_application.handler.list_integrations("Token abc").status == 401

    def test_rejects_refresh_token_as_bearer(self, multi_tenant_application):
        """Refresh tokens do not authenticate requests."""
        pair = multi_tenant_application.handler.signup({"name": "A", "email": "a@x.com", "password": "p"}).body

        assert multi_tenant_application.handler.list_integrations(f"Bearer {pair['refreshToken']}").status == 401

    def test_owners_are_isolated(self, multi_tenant_application):
        """One user cannot see another's integrations."""
        handler = multi_tenant_application.handler
        alice = bearer(multi_tenant_application, "alice@x.com")
        bob = bearer(multi_tenant_application, "bob@x.com")

        created = handler.create_integration(
            {"name": "Alice", "type": "openai", "apiKey": "sk-a"}, authorization=alice
        )
        integration_id = created.body["id"]

        assert [i["id"] for i in handler.list_integrations(alice).body] == [integration_id]
        assert handler.list_integrations(bob).body == []
        assert handler.get_integration(integration_id, bob).status == 404
        assert handler.delete_integration(integration_id, bob).status == 404
        assert handler.get_integration(integration_id, alice).status == 200
