#!/usr/bin/env python3
import json
import os
import time
import urllib.error
import urllib.request
from typing import Optional

from app.services.auth import create_session_token

API_BASE = os.getenv("API_BASE", "http://localhost:8080").rstrip("/")
PRO_PRODUCT_ID = os.getenv("CREEM_PRO_PRODUCT_ID", "")
PRO_DEV_PRODUCT_ID = os.getenv("CREEM_PRO_DEV_PRODUCT_ID", "")

PLANS = [
    {"plan_name": "basic", "price_monthly": 0, "max_applications": 1, "features": ["1 application"]},
    {
        "plan_name": "pro",
        "price_monthly": float(os.getenv("PRO_PRICE_MONTHLY", "0")),
        "max_applications": None,
        "features": ["Unlimited applications"],
        "creem_product_id": PRO_PRODUCT_ID or None,
        "creem_dev_product_id": PRO_DEV_PRODUCT_ID or None,
    },
]


def headers() -> dict[str, str]:
    token = create_session_token("seed-script", role="admin", expires_minutes=10)
    return {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}


def request(method: str, path: str, body: Optional[dict] = None, expected: tuple[int, ...] = (200,)):
    payload = None if body is None else json.dumps(body).encode("utf-8")
    req = urllib.request.Request(f"{API_BASE}{path}", data=payload, method=method)
    for key, value in headers().items():
        req.add_header(key, value)

    try:
        with urllib.request.urlopen(req, timeout=10) as resp:
            raw = resp.read().decode("utf-8")
            return resp.status, json.loads(raw) if raw else {}
    except urllib.error.HTTPError as exc:
        raw = exc.read().decode("utf-8")
        data = json.loads(raw) if raw else {}
        if exc.code in expected:
            return exc.code, data
        raise RuntimeError(f"HTTP {exc.code} for {method} {path}: {data}") from exc


def wait_api(max_attempts: int = 30) -> None:
    for _ in range(max_attempts):
        try:
            request("GET", "/api/v1/health")
            return
        except (OSError, RuntimeError):
            time.sleep(2)
    raise RuntimeError("API did not become ready in time")


def main() -> None:
    wait_api()
    _, existing = request("GET", "/api/v1/admin/subscription-plans")
    by_name = {plan["plan_name"]: plan for plan in existing}
    for plan in PLANS:
        current = by_name.get(plan["plan_name"])
        if current:
            request("PUT", f"/api/v1/admin/subscription-plans/{current['id']}", {**current, **plan})
            print(f"updated {plan['plan_name']}")
        else:
            request("POST", "/api/v1/admin/subscription-plans", plan, expected=(200, 201))
            print(f"created {plan['plan_name']}")


if __name__ == "__main__":
    main()
