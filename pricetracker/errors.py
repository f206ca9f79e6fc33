"""Error taxonomy shared by the catalog, query and API layers."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class TrackerError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {"error": self.message}


class ValidationError(TrackerError):
    """Malformed request: empty batch, bad sort field, missing confirmation."""

    status_code = 400


class NotFound(TrackerError):
    status_code = 404


class StorageFailure(TrackerError):
    """The catalog store was unreachable or rejected a write."""

    status_code = 500

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.details = details

    def to_dict(self) -> dict[str, object]:
        return {"error": self.message, "details": self.details}


@contextmanager
def storage_errors(message: str) -> Iterator[None]:
    """Re-raise database errors as StorageFailure carrying the driver message."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("%s", message)
        raise StorageFailure(message, details=str(getattr(exc, "orig", None) or exc)) from exc
