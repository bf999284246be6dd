"""
Error taxonomy for catalog synchronization.

Only FeedUnavailable and CatalogUnavailable are fatal to a run. Everything
else is caught at the variant/step boundary, classified, counted and kept in
a capped sample on the run record.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    """Classification of errors seen during a sync run."""

    FEED_UNAVAILABLE = "feed_unavailable"
    CATALOG_UNAVAILABLE = "catalog_unavailable"
    MUTATION_FAILURE = "mutation_failure"
    AUTH_EXPIRED = "auth_expired"
    PERSISTENCE_FAILURE = "persistence_failure"


class CatalogSyncError(Exception):
    """Base class for catalogworker errors."""

    kind: ErrorKind = ErrorKind.MUTATION_FAILURE


class FeedUnavailable(CatalogSyncError):
    """No feed source (remote or local fallback) produced any record."""

    kind = ErrorKind.FEED_UNAVAILABLE


class CatalogUnavailable(CatalogSyncError):
    """The internal catalog could not be streamed."""

    kind = ErrorKind.CATALOG_UNAVAILABLE


class MutationFailure(CatalogSyncError):
    """One sub-step of applying a variant failed."""

    kind = ErrorKind.MUTATION_FAILURE

    def __init__(self, step: str, messages: Optional[List[str]] = None):
        self.step = step
        self.messages = list(messages or [])
        detail = ", ".join(self.messages) or "unknown error"
        super().__init__(f"{step} failed: {detail}")


class AuthExpired(MutationFailure):
    """The admin credential is expired or invalid.

    Kept apart from generic failures: a re-run after re-authentication will
    usually recover these variants.
    """

    kind = ErrorKind.AUTH_EXPIRED


class ThrottledError(MutationFailure):
    """The admin API rate limited the request. Transient."""


class PersistenceFailure(CatalogSyncError):
    """A run record write failed. Best-effort telemetry, never fatal."""

    kind = ErrorKind.PERSISTENCE_FAILURE


class SyncAlreadyRunning(CatalogSyncError):
    """A run for this shop is already in progress."""

    def __init__(self, shop: str):
        self.shop = shop
        super().__init__(f"Sync already running for shop {shop}")


AUTH_MARKERS = (
    "unauthorized",
    "invalid api key or access token",
    "access token",
    "expired",
    "401",
)

SCOPE_MARKERS = ("access", "scope", "permission")


def is_auth_message(message: str) -> bool:
    """True if an error message points at an expired or invalid credential."""
    text = message.lower()
    return any(marker in text for marker in AUTH_MARKERS)


def is_scope_message(message: str) -> bool:
    """True if an error message points at a missing API scope."""
    text = message.lower()
    return any(marker in text for marker in SCOPE_MARKERS)


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception raised during a run to an ErrorKind."""
    if isinstance(exc, CatalogSyncError) and exc.kind != ErrorKind.MUTATION_FAILURE:
        return exc.kind
    if is_auth_message(str(exc)):
        return ErrorKind.AUTH_EXPIRED
    return ErrorKind.MUTATION_FAILURE


@dataclass
class SyncError:
    """One sampled error on a run record."""

    kind: ErrorKind
    message: str
    product: str = ""
    variant: str = ""
    step: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncError":
        return cls(
            kind=ErrorKind(data.get("kind", ErrorKind.MUTATION_FAILURE.value)),
            message=data.get("message", ""),
            product=data.get("product", ""),
            variant=data.get("variant", ""),
            step=data.get("step", ""),
        )


__all__ = [
    "ErrorKind",
    "CatalogSyncError",
    "FeedUnavailable",
    "CatalogUnavailable",
    "MutationFailure",
    "AuthExpired",
    "ThrottledError",
    "PersistenceFailure",
    "SyncAlreadyRunning",
    "SyncError",
    "classify_error",
    "is_auth_message",
    "is_scope_message",
]
