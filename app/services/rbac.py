from fastapi import Depends, HTTPException, status

from app.core.config import get_settings
from app.services.auth import AuthContext, get_auth_context


def is_admin(ctx: AuthContext) -> bool:
    if ctx.role == "admin":
        return True
    return bool(ctx.email) and ctx.email.lower() in get_settings().admin_email_set()


def require_admin(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not is_admin(ctx):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin_required")
    return ctx
