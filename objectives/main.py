"""
main.py — 90-Day Objectives FastAPI application entry point.

Start with: uvicorn objectives.main:app --reload --port 8000

Settings are read once here and passed into each handler's service; routes
reach the services through app.state.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from objectives.config import Settings
from objectives.errors import ConfigurationError, UpstreamError, make_error_response
from objectives.handlers.completion.llm_service import CompletionService
from objectives.handlers.completion.routes import router as completion_router
from objectives.handlers.records.routes import router as records_router
from objectives.handlers.records.store import RecordStore
from objectives.handlers.report.mailer import ReportMailer
from objectives.handlers.report.routes import router as report_router

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s — %(message)s",
    )


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------
def _register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed request bodies are client errors: 400 with every field violation."""
        details = []
        for error in exc.errors():
            # Build dot-notation field path, excluding the top-level 'body' loc
            field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
            details.append({"field": field or None, "issue": error["msg"]})
        return make_error_response("Invalid request", status_code=400, details=details)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
        return make_error_response(message, status_code=exc.status_code)

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        logger.error("Missing required environment variable: %s", exc.env_var)
        return make_error_response(str(exc), status_code=500)

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(
        request: Request, exc: UpstreamError
    ) -> JSONResponse:
        """Provider status and payload go back to the caller unchanged."""
        status_code = exc.status_code if 400 <= exc.status_code <= 599 else 502
        return make_error_response(
            str(exc),
            status_code=status_code,
            details=exc.details,
            status=exc.status_code,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception on %s %s",
            request.method,
            request.url.path,
            exc_info=True,
        )
        return make_error_response(
            "Internal server error",
            status_code=500,
            details=f"{type(exc).__name__}: {exc}",
        )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app(
    settings: Optional[Settings] = None,
    *,
    completion_service: Optional[CompletionService] = None,
    record_store: Optional[RecordStore] = None,
    report_mailer: Optional[ReportMailer] = None,
) -> FastAPI:
    """
    Build the API. Services default to ones constructed from `settings`;
    tests pass their own to swap out the Mistral client, Airtable table or
    SMTP connection.
    """
    settings = settings or Settings()
    configure_logging(settings)

    app = FastAPI(
        title="90-Day Objectives API",
        version=settings.app_version,
        description=(
            "Generates 90-day objectives for tech managers, refines them for a role "
            "profile, logs each step to Airtable and emails the final report."
        ),
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.state.settings = settings
    app.state.completion_service = completion_service or CompletionService(settings)
    app.state.record_store = record_store or RecordStore(settings)
    app.state.report_mailer = report_mailer or ReportMailer(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    @app.get("/api/health", tags=["System"])
    async def health_check() -> dict[str, Any]:
        """Returns service health status."""
        return {
            "status": "ok",
            "version": settings.app_version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(completion_router)
    app.include_router(records_router)
    app.include_router(report_router)

    logger.info("90-Day Objectives API v%s configured", settings.app_version)
    return app


app = create_app()
