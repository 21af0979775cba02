"""Error taxonomy and the ``Result`` type returned by fallible operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class WempError(RuntimeError):
    """Base class for every error this package reports."""


class ValidationError(WempError):
    """Raised when input is rejected before any network or disk effect."""


class NotFoundError(WempError):
    """Raised when a pairing code or menu payload id is unknown."""


class ExpiredError(NotFoundError):
    """A pairing code outlived its TTL. Callers see it as not found."""


class ApiError(WempError):
    """The official account API returned an error or could not be reached."""

    def __init__(self, message: str, errcode: int | None = None) -> None:
        super().__init__(message)
        self.errcode = errcode


class DeliveryError(ApiError):
    """A message could not be delivered to the user."""


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    """Outcome of an operation: ``data`` on success, ``error`` otherwise."""

    ok: bool
    data: T | None = None
    error: WempError | None = None

    def unwrap(self) -> T:
        if not self.ok:
            raise self.error or WempError("unwrap on failed result")
        return self.data  # type: ignore[return-value]

    def unwrap_or(self, default: T) -> T:
        return self.data if self.ok else default  # type: ignore[return-value]


def ok(data: T = None) -> Result[T]:  # type: ignore[assignment]
    return Result(ok=True, data=data)


def err(error: WempError | str) -> Result:
    if isinstance(error, str):
        error = WempError(error)
    return Result(ok=False, error=error)
