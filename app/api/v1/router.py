from fastapi import APIRouter

from app.api.v1.endpoints import (
    admin,
    applications,
    audit,
    billing,
    feedback,
    health,
    migration,
    subscription,
)

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router)
api_router.include_router(migration.router)
api_router.include_router(billing.router)
api_router.include_router(subscription.router)
api_router.include_router(applications.router)
api_router.include_router(feedback.router)
api_router.include_router(admin.router)
api_router.include_router(audit.router)
