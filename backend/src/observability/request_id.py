"""Per-request correlation ID carried in a context variable."""

import uuid
from contextvars import ContextVar
from typing import Optional

NO_REQUEST_ID = "no-request-id"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def bind_request_id(incoming: Optional[str] = None) -> str:
    """Adopt the caller's X-Request-ID, or mint a new one, for the current context."""
    request_id = incoming or uuid.uuid4().hex
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    return request_id_var.get() or NO_REQUEST_ID
