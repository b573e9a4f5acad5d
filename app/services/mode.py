from dataclasses import dataclass
from typing import Optional

import redis
from fastapi import Depends

from app.core.config import Settings, get_settings
from app.core.kv_store import KeyValueStore, get_kv_store
from app.core.logging import get_logger
from app.models import SubscriptionPlan

logger = get_logger(__name__)

DEV_MODE_KEY = "redverse:dev_mode"


class ModeFlagStore:
    def __init__(self, store: KeyValueStore, default: bool) -> None:
        self.store = store
        self.default = default

    def get_dev_mode(self) -> bool:
        try:
            raw = self.store.get(DEV_MODE_KEY)
        except redis.RedisError as exc:
            logger.warning("mode.read_failed", extra={"reason": str(exc), "fallback": self.default})
            return self.default
        if raw is None:
            return self.default
        return str(raw).lower() in {"true", "1"}

    def set_dev_mode(self, dev_mode: bool) -> None:
        self.store.set(DEV_MODE_KEY, "true" if dev_mode else "false")
        logger.info("mode.switched", extra={"dev_mode": dev_mode})


@dataclass(frozen=True)
class ServiceMode:
    """Per-request snapshot of the mode flag and the credentials it selects."""

    dev_mode: bool
    billing_api_url: str
    billing_api_key: str

    @property
    def environment(self) -> str:
        return "development" if self.dev_mode else "production"

    def product_id_for(self, plan: SubscriptionPlan) -> Optional[str]:
        return plan.creem_dev_product_id if self.dev_mode else plan.creem_product_id


def service_mode_for(dev_mode: bool, settings: Settings) -> ServiceMode:
    if dev_mode:
        return ServiceMode(True, settings.creem_dev_api_url, settings.creem_dev_api_key)
    return ServiceMode(False, settings.creem_api_url, settings.creem_api_key)


def get_mode_store() -> ModeFlagStore:
    return ModeFlagStore(get_kv_store(), get_settings().dev_mode)


def get_service_mode(store: ModeFlagStore = Depends(get_mode_store)) -> ServiceMode:
    return service_mode_for(store.get_dev_mode(), get_settings())
