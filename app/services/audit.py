from typing import Optional

from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.models import AuditLog

logger = get_logger(__name__)


def write_audit(
    db: Session, actor: str, action: str, entity_type: str, entity_id: str, payload: Optional[dict] = None
) -> None:
    """Stage an audit row on the session; the caller owns the commit."""
    db.add(
        AuditLog(
            actor=actor or "system",
            action=action,
            entity_type=entity_type,
            entity_id=entity_id or "pending",
            payload=payload or {},
        )
    )
    logger.info("audit.recorded", extra={"action": action, "entity_type": entity_type, "entity_id": entity_id})
