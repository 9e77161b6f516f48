from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException, status


class QuoteError(Exception):
    """Base class for quote domain failures; each carries a stable code."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "QUOTE_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail={"code": self.code, "message": self.message})


class QuoteNotFoundError(QuoteError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class QuoteValidationError(QuoteError):
    status_code = 422
    default_code = "VALIDATION_ERROR"


class InvalidTransitionError(QuoteError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "INVALID_TRANSITION"


class InsufficientPermissionsError(QuoteError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "INSUFFICIENT_PERMISSIONS"


class QuoteNotModifiableError(QuoteError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "QUOTE_NOT_MODIFIABLE"


class QuoteNotDeletableError(QuoteError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "QUOTE_NOT_DELETABLE"


class QuoteConflictError(QuoteError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "QUOTE_NUMBER_CONFLICT"


@contextmanager
def http_errors() -> Iterator[None]:
    try:
        yield
    except QuoteError as exc:
        raise exc.to_http() from exc
