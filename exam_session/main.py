from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from exam_session.api.router import router
from exam_session.errors import (
    InvalidAnswerError,
    RecordNotFound,
    SessionClosedError,
    SessionLoadError,
    SubmissionError,
)
from exam_session.observability import init_otel, setup_logging
from exam_session.settings import settings
from exam_session.wiring import get_registry, get_store

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (SessionLoadError, 400),
    (RecordNotFound, 404),
    (SessionClosedError, 409),
    (InvalidAnswerError, 422),
    (SubmissionError, 500),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.app_name} starting ({settings.storage_backend} store)")
    yield
    logger.info("Shutting down, closing live sessions")
    await get_registry().close_all()
    await get_store().close()


def create_app() -> FastAPI:
    setup_logging(settings.log_level)
    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    init_otel(
        app=app,
        enabled=settings.observability_enabled,
        service_name=settings.otel_service_name,
        otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        console_exporter=settings.otel_exporter_console,
        sample_rate=settings.otel_sample_rate,
    )

    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for error_type, status_code in _STATUS_BY_ERROR:
        app.add_exception_handler(error_type, _error_handler(status_code))

    app.include_router(router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "env": settings.env, "storage": settings.storage_backend}

    return app


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
