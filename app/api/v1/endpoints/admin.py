from typing import Optional

import redis
from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.db.session import get_db
from app.models import Application, ApplicationStatus, Note, SubscriptionPlan, UserSubscription
from app.schemas.applications import ApplicationUpdate, NoteNotifyRequest, NoteResponse, NoteWrite
from app.schemas.billing import PlanResponse, PlanWrite
from app.services.applications import application_payload, latest_notes
from app.services.audit import write_audit
from app.services.auth import AuthContext
from app.services.mode import ModeFlagStore, get_mode_store
from app.services.notifications import NOTE_SUBJECTS, Mailer, get_mailer, notify_note
from app.services.rbac import require_admin

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])
logger = get_logger(__name__)


def _get_application(db: Session, app_id: str) -> Application:
    application = db.get(Application, app_id)
    if not application:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="application_not_found")
    return application


def _get_plan(db: Session, plan_id: str) -> SubscriptionPlan:
    plan = db.get(SubscriptionPlan, plan_id)
    if not plan:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="plan_not_found")
    return plan


@router.get("/applications")
def list_applications(db: Session = Depends(get_db)) -> dict:
    applications = db.scalars(select(Application).order_by(Application.created_at.desc())).all()
    notes = latest_notes(db, [item.id for item in applications])
    return {"items": [application_payload(item, notes.get(item.id)) for item in applications]}


@router.put("/applications/{app_id}")
def update_application(
    app_id: str,
    payload: ApplicationUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> dict:
    application = _get_application(db, app_id)
    if not payload.name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="application_name_required")

    changes = payload.model_dump(exclude_unset=True)
    if "status" in changes:
        try:
            changes["status"] = ApplicationStatus(changes["status"])
        except ValueError as err:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_status") from err
    changes["name"] = payload.name.strip()
    for key, value in changes.items():
        if value is not None:
            setattr(application, key, value)

    write_audit(db, ctx.user_id, "application.updated", "application", application.id, {"fields": sorted(changes)})
    db.commit()
    db.refresh(application)
    return application_payload(application)


@router.delete("/applications/{app_id}")
def delete_application(app_id: str, db: Session = Depends(get_db), ctx: AuthContext = Depends(require_admin)) -> dict:
    application = _get_application(db, app_id)
    db.execute(delete(Note).where(Note.app_id == application.id))
    db.delete(application)
    write_audit(db, ctx.user_id, "application.deleted", "application", app_id, {"url": application.url})
    db.commit()
    return {"success": True}


@router.get("/applications/{app_id}/notes", response_model=list[NoteResponse])
def list_notes(app_id: str, db: Session = Depends(get_db)) -> list[Note]:
    _get_application(db, app_id)
    return db.scalars(select(Note).where(Note.app_id == app_id).order_by(Note.created_at.desc())).all()


@router.post("/applications/{app_id}/notes", response_model=NoteResponse)
def create_note(
    app_id: str,
    payload: NoteWrite,
    db: Session = Depends(get_db),
    mailer: Optional[Mailer] = Depends(get_mailer),
) -> Note:
    application = _get_application(db, app_id)
    if not payload.url.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="url_required")
    note = Note(app_id=app_id, **payload.model_dump())
    db.add(note)
    db.commit()
    db.refresh(note)
    notify_note(mailer, application, note, action="created")
    return note


@router.put("/notes/{note_id}", response_model=NoteResponse)
def update_note(note_id: str, payload: NoteWrite, db: Session = Depends(get_db)) -> Note:
    note = db.get(Note, note_id)
    if not note:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="note_not_found")
    if not payload.url.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="url_required")
    for key, value in payload.model_dump().items():
        setattr(note, key, value)
    db.commit()
    db.refresh(note)
    return note


@router.post("/notes/{note_id}/notify")
def notify_note_owner(
    note_id: str,
    payload: NoteNotifyRequest,
    db: Session = Depends(get_db),
    mailer: Optional[Mailer] = Depends(get_mailer),
) -> dict:
    note = db.get(Note, note_id)
    if not note:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="note_not_found")
    if payload.action not in NOTE_SUBJECTS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_action")
    if not note.application.user_email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="owner_email_missing")
    if not notify_note(mailer, note.application, note, action=payload.action):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="notification_failed")
    return {"success": True}


@router.delete("/notes/{note_id}")
def delete_note(note_id: str, db: Session = Depends(get_db)) -> dict:
    note = db.get(Note, note_id)
    if not note:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="note_not_found")
    db.delete(note)
    db.commit()
    return {"success": True}


@router.get("/subscription-plans", response_model=list[PlanResponse])
def list_plans(db: Session = Depends(get_db)) -> list[SubscriptionPlan]:
    return db.scalars(select(SubscriptionPlan).order_by(SubscriptionPlan.created_at.asc())).all()


@router.post("/subscription-plans", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
def create_plan(payload: PlanWrite, db: Session = Depends(get_db), ctx: AuthContext = Depends(require_admin)) -> SubscriptionPlan:
    plan_name = payload.plan_name.strip()
    if not plan_name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="plan_name_required")
    if db.scalar(select(SubscriptionPlan.id).where(SubscriptionPlan.plan_name == plan_name)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="plan_name_exists")

    plan = SubscriptionPlan(**{**payload.model_dump(), "plan_name": plan_name})
    db.add(plan)
    db.flush()
    write_audit(db, ctx.user_id, "plan.created", "subscription_plan", plan.id, {"plan_name": plan_name})
    db.commit()
    db.refresh(plan)
    return plan


@router.put("/subscription-plans/{plan_id}", response_model=PlanResponse)
def update_plan(
    plan_id: str,
    payload: PlanWrite,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> SubscriptionPlan:
    plan_name = payload.plan_name.strip()
    if not plan_name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="plan_name_required")
    plan = _get_plan(db, plan_id)
    if plan_name != plan.plan_name:
        duplicate = db.scalar(
            select(SubscriptionPlan.id).where(SubscriptionPlan.plan_name == plan_name, SubscriptionPlan.id != plan_id)
        )
        if duplicate:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="plan_name_exists")

    for key, value in {**payload.model_dump(), "plan_name": plan_name}.items():
        setattr(plan, key, value)
    write_audit(db, ctx.user_id, "plan.updated", "subscription_plan", plan.id, {"plan_name": plan_name})
    db.commit()
    db.refresh(plan)
    return plan


@router.delete("/subscription-plans/{plan_id}")
def delete_plan(plan_id: str, db: Session = Depends(get_db), ctx: AuthContext = Depends(require_admin)) -> dict:
    plan = _get_plan(db, plan_id)
    in_use = db.scalar(select(UserSubscription.id).where(UserSubscription.plan_name == plan.plan_name).limit(1))
    if in_use:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="plan_in_use")

    db.delete(plan)
    write_audit(db, ctx.user_id, "plan.deleted", "subscription_plan", plan_id, {"plan_name": plan.plan_name})
    db.commit()
    return {"success": True}


@router.get("/dev-mode")
def get_dev_mode(store: ModeFlagStore = Depends(get_mode_store)) -> dict:
    return {"devMode": store.get_dev_mode()}


@router.post("/dev-mode")
def set_dev_mode(
    payload: dict = Body(default_factory=dict),
    store: ModeFlagStore = Depends(get_mode_store),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_admin),
) -> dict:
    dev_mode = payload.get("devMode")
    if not isinstance(dev_mode, bool):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="dev_mode_must_be_boolean")

    try:
        store.set_dev_mode(dev_mode)
    except redis.RedisError as exc:
        logger.error("mode.update_failed", extra={"reason": str(exc)})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="dev_mode_update_failed") from exc

    write_audit(db, ctx.user_id, "mode.switched", "mode_flag", "dev_mode", {"dev_mode": dev_mode})
    db.commit()
    environment = "development" if dev_mode else "production"
    return {"success": True, "devMode": dev_mode, "message": f"Switched to {environment} mode"}
