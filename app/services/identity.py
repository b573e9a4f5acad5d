from dataclasses import dataclass
from typing import Optional

import httpx

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class IdentityProviderError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class IdentityUser:
    id: str
    email: str


def _parse_user(raw: dict) -> IdentityUser:
    addresses = raw.get("email_addresses") or []
    email = addresses[0].get("email_address", "") if addresses else raw.get("email", "")
    return IdentityUser(id=raw["id"], email=email or "")


class IdentityClient:
    """Thin client for the identity provider's user-record API."""

    def __init__(
        self,
        base_url: str,
        secret_key: str,
        timeout: float = 10,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self.timeout = timeout
        self.transport = transport

    def _get(self, path: str, params: Optional[dict] = None) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.secret_key}", "Accept": "application/json"}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                return client.get(f"{self.base_url}{path}", params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"identity_provider_unreachable: {exc}") from exc

    def find_users_by_email(self, email: str, limit: int = 10) -> list[IdentityUser]:
        response = self._get("/users", params={"email_address": email, "limit": limit})
        if response.status_code == 404:
            return []
        if response.status_code >= 400:
            raise IdentityProviderError(f"identity_provider_status_{response.status_code}", response.status_code)

        body = response.json()
        items = body.get("data", []) if isinstance(body, dict) else body
        return [_parse_user(item) for item in items]


def get_identity_client() -> Optional[IdentityClient]:
    settings = get_settings()
    if not settings.identity_secret_key:
        logger.debug("identity.not_configured")
        return None
    return IdentityClient(settings.identity_api_url, settings.identity_secret_key, timeout=settings.http_timeout_seconds)
