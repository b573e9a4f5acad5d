import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.router import api_router
from app.core.config import get_settings
from app.core.errors import http_exception_handler, integrity_error_handler
from app.core.logging import bind_context, clear_context, get_logger, setup_logging
from app.core.rate_limit import RateLimitMiddleware
from app.db.init_db import init_db

settings = get_settings()
setup_logging(level=settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    logger.info("app.started", extra={"app_env": settings.app_env})
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(IntegrityError, integrity_error_handler)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    start = time.perf_counter()
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    bind_context(request_id=request_id)
    logger.info("http.request", extra={"http_method": request.method, "path": request.url.path})

    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "http.exception",
            extra={
                "http_method": request.method,
                "path": request.url.path,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        clear_context()
        raise

    response.headers["X-Request-Id"] = request_id
    logger.info(
        "http.response",
        extra={
            "http_method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": int((time.perf_counter() - start) * 1000),
        },
    )
    clear_context()
    return response


app.include_router(api_router)
