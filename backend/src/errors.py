"""Domain exceptions for the pricing engine and their HTTP mapping.

Services raise these. ``register_exception_handlers`` turns them into
``{"error": code, "message": ...}`` bodies. Item-level failures inside bulk
and import operations are never raised: they are collected as indexed
entries in the operation result.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class PricingError(Exception):
    """Base exception for pricing business errors."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "pricing_error"


class NotFoundError(PricingError):
    """Price list, item, assignment, override, job, or resolvable price absent."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(PricingError):
    """Duplicate SKU, duplicate code, duplicate assignment, overlapping override."""
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class InvalidStateError(PricingError):
    """Operation not allowed in the entity's current state."""
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class PricingValidationError(PricingError):
    """Malformed input: bad date ranges, negative values, empty SKUs."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


def _error_body(code: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"error": code, "message": message, **extra}


def _where(request: Request) -> str:
    return f"{request.method} {request.url.path}"


async def handle_pricing_error(request: Request, exc: PricingError) -> JSONResponse:
    logger.info(f"{exc.code} on {_where(request)}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, str(exc)))


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    # ctx may hold exception instances that are not JSON serializable
    details = [{k: v for k, v in e.items() if k in ("loc", "msg", "type")} for e in exc.errors()]
    logger.warning(f"Rejected request body on {_where(request)}", extra={"errors": details})
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body("validation_error", "Request validation failed", details=details),
    )


async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"Database failure on {_where(request)}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("database_error", "The price store is unavailable"),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {_where(request)}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("internal_error", "Unexpected server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PricingError, handle_pricing_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(SQLAlchemyError, handle_database_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
