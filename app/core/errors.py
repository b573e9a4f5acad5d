from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.logging import get_logger

logger = get_logger(__name__)


def error_response(error: str, status_code: int, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


async def http_exception_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        error = detail.get("error", "error")
        extra = {k: v for k, v in detail.items() if k != "error"}
        return error_response(error, exc.status_code, **extra)
    return error_response(str(detail) if detail else "error", exc.status_code)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("db.integrity_error", extra={"path": request.url.path, "reason": str(exc.orig)})
    return error_response("integrity_error", 409)
