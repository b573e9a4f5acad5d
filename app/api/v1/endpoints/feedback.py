from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models import Application
from app.schemas.feedback import BugReportRequest, FeedbackRequest
from app.services.auth import AuthContext, get_auth_context
from app.services.notifications import Mailer, get_mailer, send_bug_report, send_feedback

router = APIRouter(tags=["feedback"])

MAX_FEEDBACK_LENGTH = 5000


@router.post("/feedback")
def submit_feedback(
    payload: FeedbackRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
    mailer: Optional[Mailer] = Depends(get_mailer),
) -> dict:
    text = (payload.feedback_text or "").strip()
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="feedback_required")
    if len(text) > MAX_FEEDBACK_LENGTH:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="feedback_too_long")

    application = None
    if payload.application_id:
        application = db.get(Application, payload.application_id)
        # Only the owner's own application is attached to the message.
        if application is not None and application.user_id != ctx.user_id:
            application = None

    if not send_feedback(mailer, ctx.email, ctx.user_id, text, application):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="feedback_send_failed")
    return {"success": True}


@router.post("/bug-reports")
def submit_bug_report(
    payload: BugReportRequest,
    ctx: AuthContext = Depends(get_auth_context),
    mailer: Optional[Mailer] = Depends(get_mailer),
    user_agent: Optional[str] = Header(default=None),
) -> dict:
    if not payload.error or not payload.error.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="error_required")

    submission = {
        "project_name": payload.project_name,
        "website_url": payload.website_url,
        "twitter_username": payload.twitter_username,
    }
    if not send_bug_report(mailer, ctx.email, payload.error.strip(), submission, user_agent):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="bug_report_send_failed")
    return {"success": True}
