from typing import Optional

from app.core.kv_store import KeyValueStore, get_kv_store

LEGACY_EMAIL_PREFIX = "legacy_user_email:"


class LegacyUserDirectory:
    """Email lookup for users that only existed in a retired identity environment.

    Entries live in the key-value store as ``legacy_user_email:<user_id> -> email``
    and are loaded with ``scripts/save_user_mapping.py``.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def save(self, user_id: str, email: str) -> None:
        self.store.set(f"{LEGACY_EMAIL_PREFIX}{user_id}", email.strip().lower())

    def email_for(self, user_id: str) -> Optional[str]:
        return self.store.get(f"{LEGACY_EMAIL_PREFIX}{user_id}")

    def user_ids_for_email(self, email: str) -> list[str]:
        wanted = email.strip().lower()
        found = []
        for key in self.store.scan_iter(match=f"{LEGACY_EMAIL_PREFIX}*"):
            stored = self.store.get(key)
            if stored and stored.lower() == wanted:
                found.append(key.removeprefix(LEGACY_EMAIL_PREFIX))
        return sorted(found)


def get_user_directory() -> LegacyUserDirectory:
    return LegacyUserDirectory(get_kv_store())
