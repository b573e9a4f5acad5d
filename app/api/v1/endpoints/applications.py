from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.applications import ApplicationSubmit
from app.services.applications import (
    LEADERBOARD_SIZE,
    application_payload,
    leaderboard,
    list_user_applications,
    submit_application,
)
from app.services.auth import AuthContext, get_auth_context
from app.services.notifications import Mailer, get_mailer, notify_new_application

router = APIRouter(tags=["applications"])


@router.post("/applications")
def submit(
    payload: ApplicationSubmit,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    mailer: Optional[Mailer] = Depends(get_mailer),
) -> dict:
    application = submit_application(db, ctx.user_id, payload.url, user_email=ctx.email)
    notify_new_application(mailer, application)
    return application_payload(application)


@router.get("/applications/mine")
def my_applications(db: Session = Depends(get_db), ctx: AuthContext = Depends(get_auth_context)) -> dict:
    return {"items": list_user_applications(db, ctx.user_id)}


@router.get("/leaderboard")
def get_leaderboard(
    limit: int = Query(default=LEADERBOARD_SIZE, ge=1, le=50),
    db: Session = Depends(get_db),
) -> dict:
    return {"items": leaderboard(db, limit=limit)}
