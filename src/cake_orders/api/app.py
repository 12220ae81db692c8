"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from cake_orders.api.admin import router as admin_router
from cake_orders.api.customers import router as customers_router
from cake_orders.api.sessions import router as sessions_router
from cake_orders.app_logging import configure_logging
from cake_orders.containers import AppContainer
from cake_orders.domain.errors import (
    CakeOrderError,
    ConflictError,
    ExpiredError,
    FieldError,
    LeadTimeViolationError,
    NotFoundError,
    ValidationError,
)

_STATUS_CODES: dict[type[CakeOrderError], tuple[int, str]] = {
    NotFoundError: (status.HTTP_404_NOT_FOUND, "not_found"),
    ExpiredError: (status.HTTP_410_GONE, "expired"),
    ConflictError: (status.HTTP_409_CONFLICT, "conflict"),
    LeadTimeViolationError: (
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "lead_time_violation",
    ),
    ValidationError: (status.HTTP_400_BAD_REQUEST, "validation_error"),
}

_CUSTOMER_MESSAGES = {
    "not_found": "We could not find that. Please check the code and try again.",
    "expired": "This session has expired. Please start a new one at the kiosk.",
    "conflict": "This action is no longer available. Please refresh and try again.",
    "lead_time_violation": "That pickup time is not available.",
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper = app.state.container.session_sweeper
        sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()
            await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(sessions_router)
    app.include_router(customers_router)
    app.include_router(admin_router)

    @app.exception_handler(CakeOrderError)
    async def handle_domain_error(
        request: Request, exc: CakeOrderError
    ) -> JSONResponse:
        status_code, code = _classify(exc)
        logger.warning(
            "Request failed: %s %s -> %s: %s",
            request.method,
            request.url.path,
            code,
            exc,
        )
        return JSONResponse(
            status_code=status_code,
            content=_error_body(exc, code, _is_staff_path(request)),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_schema_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            FieldError(
                field=".".join(str(part) for part in error["loc"][1:]) or "body",
                message=error["msg"],
            )
            for error in exc.errors()
        ]
        logger.warning(
            "Request rejected: %s %s -> %s",
            request.method,
            request.url.path,
            "; ".join(f"{e.field}: {e.message}" for e in errors),
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(ValidationError(errors), "validation_error", True),
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app


def _classify(exc: CakeOrderError) -> tuple[int, str]:
    for error_type, mapping in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return mapping
    return status.HTTP_400_BAD_REQUEST, "error"


def _is_staff_path(request: Request) -> bool:
    return request.url.path.startswith("/admin")


def _error_body(exc: CakeOrderError, code: str, detailed: bool) -> dict[str, object]:
    if isinstance(exc, ValidationError):
        return {
            "error": code,
            "message": "Please correct the highlighted fields.",
            "errors": [
                {"field": error.field, "message": error.message}
                for error in exc.errors
            ],
        }
    if not detailed:
        return {
            "error": code,
            "message": _CUSTOMER_MESSAGES.get(code, "Something went wrong."),
        }
    body: dict[str, object] = {"error": code, "message": str(exc)}
    if isinstance(exc, ConflictError):
        body["current_status"] = exc.current_status
        body["target_status"] = exc.target_status
    if isinstance(exc, LeadTimeViolationError):
        body["earliest_pickup"] = exc.earliest_pickup.isoformat()
    return body
