# sarvasync/main.py
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from sarvasync.config import get_settings
from sarvasync.errors import (
    AuthenticationError, ResourceMissingError, SarvasyncError, StateIntegrityError,
)
from sarvasync.infrastructure.database import close_db, init_db
from sarvasync.infrastructure.redis_cache import close_redis
from sarvasync.middleware.logging import RequestIdMiddleware
from sarvasync.routers.auth_router import router as auth_router
from sarvasync.routers.connect_router import router as connect_router
from sarvasync.routers.user_router import router as user_router
from sarvasync.tasks.analytics_scheduler import start_analytics_scheduler, stop_analytics_scheduler


def configure_structlog(level: str = "INFO"):
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        context_class=dict,
    )


settings = get_settings()
configure_structlog(settings.LOG_LEVEL)
logger = structlog.get_logger()


def _status_for(exc: SarvasyncError) -> int:
    if isinstance(exc, AuthenticationError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, StateIntegrityError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, ResourceMissingError):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(exc: Exception, public_message: str) -> dict:
    body = {"error": public_message}
    if not get_settings().is_production:
        body["message"] = str(exc)
    return body


async def sarvasync_error_handler(request: Request, exc: SarvasyncError):
    code = _status_for(exc)
    if code >= 500:
        logger.error("request_failed", error_type=type(exc).__name__, error=str(exc), exc_info=exc)
        public = exc.public_message
    else:
        # 4xx messages are written for the client
        logger.info("request_rejected", error_type=type(exc).__name__, error=str(exc))
        public = str(exc)
    return JSONResponse(status_code=code, content=error_body(exc, public))


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("database_error", error=str(exc), exc_info=exc)
    return JSONResponse(status_code=500, content=error_body(exc, SarvasyncError.public_message))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception", error=str(exc), exc_info=exc)
    return JSONResponse(status_code=500, content=error_body(exc, SarvasyncError.public_message))


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    scheduler = start_analytics_scheduler()
    logger.info("app_startup", environment=get_settings().ENVIRONMENT)
    try:
        yield
    finally:
        await stop_analytics_scheduler(scheduler)
        await close_redis()
        await close_db()
        logger.info("app_shutdown")


def create_app() -> FastAPI:
    s = get_settings()
    app = FastAPI(title="Sarvasync", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[s.CORS_ORIGIN],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(SarvasyncError, sarvasync_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(auth_router)
    app.include_router(connect_router)
    app.include_router(user_router)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": get_settings().ENVIRONMENT,
        }

    return app


app = create_app()


def run():
    uvicorn.run("sarvasync.main:app", host="0.0.0.0", port=int(os.getenv("PORT", 3000)), reload=not settings.is_production)


if __name__ == "__main__":
    run()
