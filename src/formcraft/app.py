from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from formcraft.analytics import AnalyticsAggregator
from formcraft.auth import get_auth_provider
from formcraft.config import Settings, configure_logging
from formcraft.errors import FormcraftError, QuotaExceeded
from formcraft.notifications import MailSender, get_mail_sender
from formcraft.protocols import Storage
from formcraft.registry import FieldTypeRegistry
from formcraft.routes.forms import router as forms_router
from formcraft.routes.public import router as public_router
from formcraft.service import FormService, SubmissionService
from formcraft.storage import init_storage
from formcraft.utils import now_utc
from formcraft.validator import SubmissionValidator

logger = logging.getLogger(__name__)


async def handle_formcraft_error(request: Request, exc: FormcraftError) -> JSONResponse:
    if isinstance(exc, QuotaExceeded):
        logger.info("Quota reached on %s: %s", request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def handle_storage_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"message": "Server error"}, status_code=500)


def create_app(
    settings: Settings | None = None,
    storage: Storage | None = None,
    mail_sender: MailSender | None = None,
    clock: Callable[[], datetime] = now_utc,
) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings)
    storage = storage or init_storage(settings)
    mail_sender = mail_sender or get_mail_sender(settings)
    registry = FieldTypeRegistry()
    aggregator = AnalyticsAggregator(storage.analytics)

    app = FastAPI(
        title="formcraft",
        openapi_tags=[
            {"name": "api/forms", "description": "Form editor and owner dashboard"},
            {"name": "public", "description": "Published forms"},
            {"name": "system", "description": "System"},
        ],
    )

    app.state.settings = settings
    app.state.storage = storage
    app.state.auth_provider = get_auth_provider(settings)
    app.state.registry = registry
    app.state.form_service = FormService(storage, settings, registry, aggregator, clock=clock)
    app.state.submission_service = SubmissionService(
        storage,
        settings,
        registry,
        aggregator,
        SubmissionValidator(clock=clock),
        mail_sender,
        clock=clock,
    )

    app.add_exception_handler(FormcraftError, handle_formcraft_error)
    app.add_exception_handler(SQLAlchemyError, handle_storage_error)
    app.add_exception_handler(OSError, handle_storage_error)

    app.include_router(forms_router)
    app.include_router(public_router)

    @app.get("/healthz", tags=["system"])
    async def healthz() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    return app
