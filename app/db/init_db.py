from sqlalchemy import select

from app.core.config import get_settings
from app.core.logging import get_logger
from app.db.session import SessionLocal, engine
from app.models import Base, SubscriptionPlan

logger = get_logger(__name__)


def seed_default_plan() -> None:
    settings = get_settings()
    with SessionLocal() as db:
        existing = db.scalar(select(SubscriptionPlan.id).where(SubscriptionPlan.plan_name == settings.default_plan_name))
        if existing:
            return
        db.add(SubscriptionPlan(plan_name=settings.default_plan_name, price_monthly=0, max_applications=1))
        db.commit()
        logger.info("db.default_plan_seeded", extra={"plan_name": settings.default_plan_name})


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
    seed_default_plan()
