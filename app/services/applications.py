from collections.abc import Sequence
from typing import Optional
from urllib.parse import urlparse

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.models import Application, Note
from app.services.subscription import check_application_limit

logger = get_logger(__name__)

LEADERBOARD_SIZE = 10

# Collects weigh most, then comments, then likes.
LIKE_WEIGHT = 1
COLLECT_WEIGHT = 3
COMMENT_WEIGHT = 2


def engagement_score(note: Optional[Note]) -> int:
    if note is None:
        return 0
    return (
        (note.likes_count or 0) * LIKE_WEIGHT
        + (note.collects_count or 0) * COLLECT_WEIGHT
        + (note.comments_count or 0) * COMMENT_WEIGHT
    )


def normalize_url(url: str) -> str:
    candidate = (url or "").strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_url")
    return candidate


def project_name_from_url(url: str) -> str:
    host = (urlparse(url).hostname or "").removeprefix("www.")
    return host.split(".")[0] if host else "Unknown Project"


def submit_application(db: Session, user_id: str, url: str, user_email: Optional[str] = None) -> Application:
    url = normalize_url(url)

    quota = check_application_limit(db, user_id)
    if not quota.can_submit:
        logger.info("application.limit_reached", extra={"user_id": user_id, "plan_name": quota.plan.plan_name})
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="application_limit_reached")

    duplicate = db.scalar(select(Application.id).where(Application.user_id == user_id, Application.url == url))
    if duplicate:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="application_already_submitted")

    application = Application(user_id=user_id, user_email=user_email, url=url, name=project_name_from_url(url))
    db.add(application)
    db.commit()
    db.refresh(application)
    logger.info("application.submitted", extra={"user_id": user_id, "application_id": application.id})
    return application


def latest_notes(db: Session, app_ids: Sequence[str]) -> dict[str, Note]:
    if not app_ids:
        return {}
    latest: dict[str, Note] = {}
    for note in db.scalars(select(Note).where(Note.app_id.in_(app_ids)).order_by(Note.created_at.desc())):
        latest.setdefault(note.app_id, note)
    return latest


def note_payload(note: Optional[Note]) -> Optional[dict]:
    if note is None:
        return None
    return {
        "id": note.id,
        "url": note.url,
        "publish_date": note.publish_date,
        "likes_count": note.likes_count,
        "collects_count": note.collects_count,
        "comments_count": note.comments_count,
        "created_at": note.created_at,
    }


def application_payload(application: Application, note: Optional[Note] = None) -> dict:
    return {
        "id": application.id,
        "user_id": application.user_id,
        "name": application.name,
        "url": application.url,
        "twitter_id": application.twitter_id,
        "explain": application.explain,
        "image_url": application.image_url,
        "status": application.status.value,
        "created_at": application.created_at,
        "note": note_payload(note),
        "total_engagement": engagement_score(note),
    }


def ranked_applications(db: Session, applications: Sequence[Application]) -> list[dict]:
    notes = latest_notes(db, [item.id for item in applications])
    items = [application_payload(item, notes.get(item.id)) for item in applications]
    return sorted(items, key=lambda item: item["total_engagement"], reverse=True)


def list_user_applications(db: Session, user_id: str) -> list[dict]:
    applications = db.scalars(
        select(Application).where(Application.user_id == user_id).order_by(Application.created_at.desc())
    ).all()
    return ranked_applications(db, applications)


def leaderboard(db: Session, limit: int = LEADERBOARD_SIZE) -> list[dict]:
    applications = db.scalars(select(Application).order_by(Application.created_at.desc())).all()
    ranked = [item for item in ranked_applications(db, applications) if item["note"] is not None]
    return ranked[:limit]
