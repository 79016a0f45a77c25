from enum import Enum
from typing import Dict, List
import logging

import httpx
from pydantic import ValidationError

from .schemas import ErrorEnvelope

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"
INSUFFICIENT_STOCK_CODE = "insufficient_stock"


class ErrorKind(str, Enum):
    TRANSPORT = "transport" # Network failure, timeout or malformed response
    VALIDATION = "validation"
    INSUFFICIENT_STOCK = "insufficient_stock"
    NOT_FOUND = "not_found"
    SERVER = "server" # Any other non-2xx answer


class ApiError(Exception):
    """The one error shape every API failure is normalized into."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str = GENERIC_ERROR_MESSAGE,
        code: str | None = None,
        details: Dict[str, List[str]] | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code
        self.details = details or None
        self.status_code = status_code

    def __repr__(self):
        return f"<ApiError(kind={self.kind.value}, status={self.status_code}, code={self.code!r}, message={self.message!r})>"


def transport_error(exc: Exception | None = None) -> ApiError:
    """Timeouts, connection problems and unreadable bodies all look the same to callers."""
    if exc is not None:
        logger.debug(f"Normalizing transport failure: {exc!r}")
    return ApiError(ErrorKind.TRANSPORT)


def from_response(response: httpx.Response) -> ApiError:
    """Classifies a non-2xx response using the backend's error envelope when it has one."""
    status_code = response.status_code
    body = None
    try:
        body = ErrorEnvelope.model_validate(response.json()).error
    except (ValueError, ValidationError):
        logger.debug(f"Response {status_code} carried no error envelope")

    message = (body.message if body else None) or GENERIC_ERROR_MESSAGE
    code = body.code if body else None
    details = body.details if body else None

    if code == INSUFFICIENT_STOCK_CODE:
        # Stable code + message only; field details never accompany it
        return ApiError(ErrorKind.INSUFFICIENT_STOCK, message, code=code, status_code=status_code)
    if status_code == 404:
        return ApiError(ErrorKind.NOT_FOUND, message, code=code, status_code=status_code)
    if details or status_code in (400, 422):
        return ApiError(ErrorKind.VALIDATION, message, code=code, details=details, status_code=status_code)
    return ApiError(ErrorKind.SERVER, message, code=code, status_code=status_code)
