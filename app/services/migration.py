"""Sign-in time migration of user-owned rows between identity environments.

When a person signs in under a new account identifier, rows still owned by
their previous identifier (same email) are re-homed in place: ``user_id`` is
rewritten and ``migrated_from_user_id`` keeps the previous value. Nothing is
deleted. Each table commits on its own so one failing table does not hold
back the others, and a table that already has rows under the new identifier
is left alone, which makes repeated calls no-ops.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.models import Application, UserSubscription
from app.services.audit import write_audit
from app.services.identity import IdentityClient
from app.services.user_directory import LegacyUserDirectory

logger = get_logger(__name__)


@dataclass
class MigrationOutcome:
    attempted: bool = False
    success: bool = True
    errors: list[str] = field(default_factory=list)
    migrated_tables: list[str] = field(default_factory=list)
    previous_user_id: Optional[str] = None
    had_previous_data: bool = False


@dataclass(frozen=True)
class MigratableTable:
    name: str
    model: type

    def count(self, db: Session, user_id: str) -> int:
        return db.scalar(select(func.count()).select_from(self.model).where(self.model.user_id == user_id)) or 0

    def rehome(self, db: Session, old_user_id: str, new_user_id: str) -> int:
        result = db.execute(
            update(self.model)
            .where(self.model.user_id == old_user_id)
            .values(user_id=new_user_id, migrated_from_user_id=old_user_id)
        )
        return result.rowcount or 0


MIGRATABLE_TABLES: tuple[MigratableTable, ...] = (
    MigratableTable("applications", Application),
    MigratableTable("user_subscriptions", UserSubscription),
)


def previous_user_ids(
    identity: Optional[IdentityClient],
    directory: Optional[LegacyUserDirectory],
    email: str,
    new_user_id: str,
) -> list[str]:
    """Identifiers registered under ``email`` other than ``new_user_id``.

    The identity provider answers "not found" with an empty list; any other
    provider failure raises ``IdentityProviderError`` to the caller.
    """
    candidates: list[str] = []
    if identity is not None:
        candidates.extend(user.id for user in identity.find_users_by_email(email))
    if directory is not None:
        candidates.extend(directory.user_ids_for_email(email))

    seen = set()
    ordered = []
    for candidate in candidates:
        if candidate and candidate != new_user_id and candidate not in seen:
            seen.add(candidate)
            ordered.append(candidate)
    return ordered


def find_previous_user_id(
    db: Session,
    candidates: Sequence[str],
    tables: Sequence[MigratableTable] = MIGRATABLE_TABLES,
) -> Optional[str]:
    for candidate in candidates:
        if any(table.count(db, candidate) for table in tables):
            return candidate
    return None


def migrate_user_data(
    db: Session,
    old_user_id: str,
    new_user_id: str,
    tables: Sequence[MigratableTable] = MIGRATABLE_TABLES,
) -> MigrationOutcome:
    outcome = MigrationOutcome(attempted=True, previous_user_id=old_user_id, had_previous_data=True)

    for table in tables:
        try:
            if table.count(db, new_user_id):
                left_behind = table.count(db, old_user_id)
                if left_behind:
                    # Rows stay with the old identifier; merging is left to an operator.
                    logger.warning(
                        "migration.table_left_behind",
                        extra={
                            "table": table.name,
                            "previous_user_id": old_user_id,
                            "user_id": new_user_id,
                            "rows": left_behind,
                        },
                    )
                else:
                    logger.info("migration.table_skipped", extra={"table": table.name, "reason": "already_present"})
                continue
            moved = table.rehome(db, old_user_id, new_user_id)
            db.commit()
        except Exception as exc:
            db.rollback()
            outcome.errors.append(f"{table.name} migration failed: {exc}")
            logger.warning("migration.table_failed", extra={"table": table.name, "reason": str(exc)})
            continue

        if moved:
            outcome.migrated_tables.append(table.name)
            logger.info("migration.table_migrated", extra={"table": table.name, "rows": moved})

    outcome.success = not outcome.errors
    return outcome


def check_and_migrate(
    db: Session,
    identity: Optional[IdentityClient],
    directory: Optional[LegacyUserDirectory],
    new_user_id: str,
    email: str,
    tables: Sequence[MigratableTable] = MIGRATABLE_TABLES,
) -> MigrationOutcome:
    candidates = previous_user_ids(identity, directory, email, new_user_id)
    old_user_id = find_previous_user_id(db, candidates, tables)
    if old_user_id is None:
        logger.info("migration.not_needed", extra={"user_id": new_user_id, "candidates": len(candidates)})
        return MigrationOutcome()

    logger.info("migration.started", extra={"user_id": new_user_id, "previous_user_id": old_user_id})
    outcome = migrate_user_data(db, old_user_id, new_user_id, tables)

    if outcome.migrated_tables:
        write_audit(
            db,
            actor=new_user_id,
            action="user.migrated",
            entity_type="user",
            entity_id=new_user_id,
            payload={
                "previous_user_id": old_user_id,
                "migrated_tables": outcome.migrated_tables,
                "errors": outcome.errors,
            },
        )
        db.commit()

    logger.info(
        "migration.finished",
        extra={"user_id": new_user_id, "success": outcome.success, "migrated_tables": outcome.migrated_tables},
    )
    return outcome
