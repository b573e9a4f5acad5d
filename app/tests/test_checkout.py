import json

import httpx
import pytest

from app.main import app
from app.models import SubscriptionPlan
from app.services.billing import BillingClient, get_billing_client

CHECKOUT = {"userId": "user_new", "userEmail": "maker@example.com", "planName": "pro"}


@pytest.fixture()
def billing_calls(client):
    calls = []
    responses = {"status": 200}

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if "body" in responses:
            return httpx.Response(responses["status"], text=responses["body"])
        if responses["status"] != 200:
            return httpx.Response(responses["status"], json={"message": "upstream exploded"})
        return httpx.Response(200, json={"id": "ch_1", "checkout_url": "https://pay.test/ch_1"})

    app.dependency_overrides[get_billing_client] = lambda: BillingClient(transport=httpx.MockTransport(handler))
    return calls, responses


@pytest.fixture()
def pro_plan(db):
    plan = SubscriptionPlan(
        plan_name="pro",
        price_monthly=9.9,
        max_applications=None,
        creem_product_id="prod_live_1",
        creem_dev_product_id="prod_123",
    )
    db.add(plan)
    db.commit()
    return plan


def set_dev_mode(client, admin_headers, value: bool) -> None:
    response = client.post("/api/v1/admin/dev-mode", json={"devMode": value}, headers=admin_headers)
    assert response.status_code == 200, response.text


@pytest.mark.parametrize("missing", ["userId", "userEmail", "planName"])
def test_checkout_requires_fields(client, missing):
    body = {k: v for k, v in CHECKOUT.items() if k != missing}
    response = client.post("/api/v1/checkout", json=body)
    assert response.status_code == 400


def test_checkout_unknown_plan_is_404(client, billing_calls):
    response = client.post("/api/v1/checkout", json=CHECKOUT)
    assert response.status_code == 404
    assert response.json()["error"] == "plan_not_found"
    assert billing_calls[0] == []


def test_checkout_disabled_plan_is_404(client, db, pro_plan, billing_calls):
    pro_plan.enable = False
    db.commit()

    response = client.post("/api/v1/checkout", json=CHECKOUT)
    assert response.status_code == 404


def test_checkout_without_product_for_mode_is_400(client, db, admin_headers, billing_calls):
    db.add(SubscriptionPlan(plan_name="pro", creem_product_id="prod_live_1", creem_dev_product_id=None))
    db.commit()
    set_dev_mode(client, admin_headers, True)

    response = client.post("/api/v1/checkout", json=CHECKOUT)
    assert response.status_code == 400
    assert response.json()["error"] == "product_not_configured"
    assert billing_calls[0] == []


def test_checkout_in_development_mode_uses_development_credentials(client, pro_plan, admin_headers, billing_calls):
    calls, _ = billing_calls
    set_dev_mode(client, admin_headers, True)

    response = client.post("/api/v1/checkout", json=CHECKOUT)
    assert response.status_code == 200, response.text
    assert response.json() == {"success": True, "checkout_url": "https://pay.test/ch_1", "checkout_id": "ch_1"}

    assert len(calls) == 1
    sent = calls[0]
    assert str(sent.url) == "https://test-billing.test/v1/checkouts"
    assert sent.headers["x-api-key"] == "dev-key"
    body = json.loads(sent.content)
    assert body["product_id"] == "prod_123"
    assert body["customer"] == {"email": "maker@example.com"}
    assert body["metadata"]["environment"] == "development"
    assert body["metadata"]["userId"] == "user_new"


def test_checkout_in_production_mode_uses_production_credentials(client, pro_plan, billing_calls):
    calls, _ = billing_calls

    response = client.post("/api/v1/checkout", json=CHECKOUT)
    assert response.status_code == 200, response.text

    sent = calls[0]
    assert str(sent.url) == "https://billing.test/v1/checkouts"
    assert sent.headers["x-api-key"] == "prod-key"
    body = json.loads(sent.content)
    assert body["product_id"] == "prod_live_1"
    assert body["metadata"]["environment"] == "production"


def test_checkout_upstream_failure_is_generic_500(client, pro_plan, billing_calls):
    _, responses = billing_calls
    responses["status"] = 502

    response = client.post("/api/v1/checkout", json=CHECKOUT)
    assert response.status_code == 500
    assert response.json() == {"error": "checkout_failed"}


def test_checkout_non_json_upstream_reply_is_generic_500(client, pro_plan, billing_calls):
    _, responses = billing_calls
    responses["body"] = "<html>gateway</html>"

    response = client.post("/api/v1/checkout", json=CHECKOUT)
    assert response.status_code == 500
    assert response.json() == {"error": "checkout_failed"}
