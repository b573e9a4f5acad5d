from typing import Optional

import httpx

from app.core.logging import get_logger

logger = get_logger(__name__)


class RedverseClient:
    """Caller-side sign-in trigger for the Redverse API.

    ``initialize_user`` runs at most once per user identifier for the lifetime of
    the client. The set is only a request saver: the server keeps both steps
    idempotent on its own.
    """

    def __init__(
        self,
        base_url: str,
        session_token: Optional[str] = None,
        timeout: float = 10,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session_token = session_token
        self.timeout = timeout
        self.transport = transport
        self._initialized: set[str] = set()

    def _post(self, path: str, body: Optional[dict] = None) -> tuple[Optional[dict], Optional[str]]:
        headers = {"Content-Type": "application/json"}
        if self.session_token:
            headers["Authorization"] = f"Bearer {self.session_token}"
        try:
            with httpx.Client(base_url=self.base_url, headers=headers, timeout=self.timeout, transport=self.transport) as client:
                response = client.post(path, json=body)
        except httpx.HTTPError as exc:
            logger.error("client.request_error", extra={"path": path, "reason": str(exc)})
            return None, str(exc)

        if response.is_error:
            logger.error("client.request_failed", extra={"path": path, "status_code": response.status_code})
            return None, f"HTTP {response.status_code}: {response.text}"
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            logger.error("client.invalid_body", extra={"path": path, "status_code": response.status_code})
            return None, f"invalid JSON body from {path}"
        return data, None

    def check_migration(self, user_id: str, email: str) -> tuple[Optional[dict], Optional[str]]:
        return self._post("/api/v1/migration-check", {"userId": user_id, "email": email})

    def ensure_subscription(self) -> tuple[Optional[dict], Optional[str]]:
        return self._post("/api/v1/subscriptions/ensure")

    def initialize_user(self, user_id: str, email: str) -> Optional[dict]:
        """Migration check, then default subscription. Failures are logged and reported, never raised.

        Returns ``None`` when ``user_id`` was already handled by this client.
        """
        if user_id in self._initialized:
            return None
        self._initialized.add(user_id)

        migration, error = self.check_migration(user_id, email)
        if migration is None:
            return {
                "migration": {"migrationPerformed": False, "success": False, "errors": [error]},
                "subscription": None,
            }

        subscription, error = self.ensure_subscription()
        if subscription is None:
            subscription = {"created": False, "error": error}
        elif subscription.get("created"):
            logger.info("client.subscription_initialized", extra={"user_id": user_id})
        return {"migration": migration, "subscription": subscription}
