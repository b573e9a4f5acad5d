from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.db.session import get_db
from app.schemas.migration import MigrationCheckRequest, MigrationCheckResponse
from app.services.auth import AuthContext, get_auth_context
from app.services.identity import IdentityClient, get_identity_client
from app.services.migration import check_and_migrate
from app.services.user_directory import LegacyUserDirectory, get_user_directory

router = APIRouter(tags=["migration"])
logger = get_logger(__name__)


@router.post("/migration-check", response_model=MigrationCheckResponse)
def migration_check(
    payload: MigrationCheckRequest,
    db: Session = Depends(get_db),
    identity: Optional[IdentityClient] = Depends(get_identity_client),
    directory: LegacyUserDirectory = Depends(get_user_directory),
    ctx: AuthContext = Depends(get_auth_context),
) -> MigrationCheckResponse:
    if not payload.user_id or not payload.email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_user_id_or_email")
    email = payload.email.strip().lower()
    # Only the signed-in user may pull data into their own identifier.
    if payload.user_id != ctx.user_id or not ctx.email or email != ctx.email.strip().lower():
        logger.warning("migration.identity_mismatch", extra={"user_id": ctx.user_id})
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="identity_mismatch")

    try:
        outcome = check_and_migrate(db, identity, directory, payload.user_id, email)
    except Exception as exc:
        logger.exception("migration.check_failed", extra={"user_id": payload.user_id})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal_error") from exc

    return MigrationCheckResponse(
        migration_performed=outcome.attempted,
        success=outcome.success,
        errors=outcome.errors,
        migrated_tables=outcome.migrated_tables,
        user_had_previous_data=outcome.had_previous_data,
    )
