import json

import httpx

from app.clients.redverse import RedverseClient

MIGRATION_OK = {
    "migrationPerformed": False,
    "success": True,
    "errors": [],
    "migratedTables": [],
    "userHadPreviousData": False,
}


def recording_transport(routes: dict):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        status, body = routes[request.url.path]
        return httpx.Response(status, json=body)

    return calls, httpx.MockTransport(handler)


def test_initialize_user_runs_migration_then_subscription():
    calls, transport = recording_transport(
        {
            "/api/v1/migration-check": (200, MIGRATION_OK),
            "/api/v1/subscriptions/ensure": (200, {"user_id": "user_new", "plan_name": "basic", "created": True}),
        }
    )
    client = RedverseClient("https://api.redverse.test/", session_token="tok", transport=transport)

    result = client.initialize_user("user_new", "maker@example.com")

    assert [call.url.path for call in calls] == ["/api/v1/migration-check", "/api/v1/subscriptions/ensure"]
    assert json.loads(calls[0].content) == {"userId": "user_new", "email": "maker@example.com"}
    assert calls[1].headers["Authorization"] == "Bearer tok"
    assert result["migration"] == MIGRATION_OK
    assert result["subscription"]["created"] is True


def test_initialize_user_runs_once_per_user():
    calls, transport = recording_transport(
        {
            "/api/v1/migration-check": (200, MIGRATION_OK),
            "/api/v1/subscriptions/ensure": (200, {"created": False}),
        }
    )
    client = RedverseClient("https://api.redverse.test", transport=transport)

    assert client.initialize_user("user_new", "maker@example.com") is not None
    assert client.initialize_user("user_new", "maker@example.com") is None
    assert len(calls) == 2

    client.initialize_user("user_other", "other@example.com")
    assert len(calls) == 4


def test_failed_migration_check_skips_subscription():
    calls, transport = recording_transport({"/api/v1/migration-check": (500, {"error": "internal_error"})})
    client = RedverseClient("https://api.redverse.test", transport=transport)

    result = client.initialize_user("user_new", "maker@example.com")

    assert len(calls) == 1
    assert result["subscription"] is None
    assert result["migration"]["success"] is False
    assert result["migration"]["migrationPerformed"] is False
    assert result["migration"]["errors"][0].startswith("HTTP 500")


def test_failed_subscription_step_is_reported():
    _, transport = recording_transport(
        {
            "/api/v1/migration-check": (200, MIGRATION_OK),
            "/api/v1/subscriptions/ensure": (401, {"error": "auth_required"}),
        }
    )
    client = RedverseClient("https://api.redverse.test", transport=transport)

    result = client.initialize_user("user_new", "maker@example.com")
    assert result["subscription"]["created"] is False
    assert result["subscription"]["error"].startswith("HTTP 401")


def test_non_json_reply_is_reported_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    client = RedverseClient("https://api.redverse.test", transport=httpx.MockTransport(handler))

    result = client.initialize_user("user_new", "maker@example.com")
    assert result["subscription"] is None
    assert result["migration"]["success"] is False
    assert result["migration"]["errors"] == ["invalid JSON body from /api/v1/migration-check"]


def test_transport_errors_are_reported_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = RedverseClient("https://api.redverse.test", transport=httpx.MockTransport(handler))

    result = client.initialize_user("user_new", "maker@example.com")
    assert result["subscription"] is None
    assert result["migration"]["errors"] == ["connection refused"]


def test_client_against_live_app(client, db, user_headers):
    token = user_headers["Authorization"].removeprefix("Bearer ")
    redverse = RedverseClient(str(client.base_url), session_token=token, transport=client._transport)

    result = redverse.initialize_user("user_new", "maker@example.com")
    assert result["migration"]["success"] is True
    assert result["subscription"] == {"user_id": "user_new", "plan_name": "basic", "created": True}
