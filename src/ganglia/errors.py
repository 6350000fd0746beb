"""Exception taxonomy for ganglia."""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum, unique


class GangliaError(Exception):
    """Base exception for all ganglia errors."""


@unique
class AuthErrorCode(StrEnum):
    """Sub-kinds of backend authentication failure."""

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"


@unique
class SessionErrorReason(StrEnum):
    """Why a backend rejected the session it was given."""

    EXPIRED = "expired"
    INVALID = "invalid"
    NOT_FOUND = "not_found"


class BrainError(GangliaError):
    """Error from a brain backend call.

    Attributes:
        retryable: Whether the caller may retry the request.
        backend: Backend type that raised the error.
        status_code: HTTP status code from the backend, if available.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        backend: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.backend = backend
        self.status_code = status_code


class AuthenticationError(BrainError):
    """The backend rejected our credentials. Never retried automatically."""

    def __init__(
        self,
        message: str,
        *,
        code: AuthErrorCode = AuthErrorCode.UNAUTHORIZED,
        backend: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, retryable=False, backend=backend, status_code=status_code)
        self.code = code


class SessionError(BrainError):
    """The backend rejected the session; callers re-resolve and retry once."""

    def __init__(
        self,
        message: str,
        *,
        reason: SessionErrorReason = SessionErrorReason.EXPIRED,
        session_id: str | None = None,
        backend: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, retryable=False, backend=backend, status_code=status_code)
        self.reason = reason
        self.session_id = session_id


class UnknownBackendKind(GangliaError):
    """No factory is registered for the requested backend type."""

    def __init__(self, type_name: str, available: Iterable[str] = ()) -> None:
        self.type_name = type_name
        self.available = sorted(available)
        listing = ", ".join(self.available) or "none"
        super().__init__(f"Unknown brain type: {type_name!r}. Available types: {listing}")


class TransferProtocolError(GangliaError):
    """Malformed or inconsistent chunk metadata on the side channel."""

    def __init__(self, message: str, *, transfer_id: str = "") -> None:
        super().__init__(message)
        self.transfer_id = transfer_id


class TurnTimeout(GangliaError):
    """A backend call or synthesis exceeded its time bound."""

    def __init__(self, stage: str, timeout: float) -> None:
        super().__init__(f"{stage} exceeded {timeout:.1f}s")
        self.stage = stage
        self.timeout = timeout


class InvalidTurnTransition(GangliaError):
    """A turn was asked to move to a state its current state cannot reach."""
