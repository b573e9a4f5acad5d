#!/usr/bin/env python3
"""Load legacy users into the directory consulted by the sign-in migration.

Input is a JSON export of the retired identity environment:
``[{"id": "user_abc", "email": "someone@example.com"}, ...]``. Users with an
``email_addresses`` list (the identity provider's raw export format) are
accepted too.
"""
import argparse
import json
import sys
from pathlib import Path

from app.core.kv_store import get_kv_store
from app.services.user_directory import LegacyUserDirectory


def _email(record: dict) -> str:
    if record.get("email"):
        return record["email"]
    addresses = record.get("email_addresses") or []
    return addresses[0].get("email_address", "") if addresses else ""


def load_records(path: Path) -> list[dict]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("data", [])
    return data


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("export", type=Path, help="JSON export of legacy users")
    parser.add_argument("--dry-run", action="store_true", help="only report what would be saved")
    args = parser.parse_args()

    directory = LegacyUserDirectory(get_kv_store())
    saved = 0
    skipped = 0
    for record in load_records(args.export):
        user_id = record.get("id")
        email = _email(record)
        if not user_id or not email:
            skipped += 1
            continue
        if not args.dry_run:
            directory.save(user_id, email)
        saved += 1

    print(json.dumps({"saved": saved, "skipped": skipped, "dry_run": args.dry_run}))
    return 0


if __name__ == "__main__":
    sys.exit(main())
