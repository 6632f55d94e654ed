# media_resolver/core/exceptions.py
from __future__ import annotations

"""
Media Resolver — Error Taxonomy
===============================
A small, consistent exception layer that lets every failure carry structured
metadata (`code`, `details`, `retryable`) and render a canonical body for
whatever surface ends up reporting it.

Key ideas
---------
- One base `MediaResolverError` that carries `code`, `asset_id`, `details`, `extra`.
- Domain exceptions inherit from it and set sane defaults.
- `retryable` tells callers whether their own retry policy applies.
- Only `RegistrationInconsistency` (and storage outages) propagate as hard
  errors from the resolvers; probe/strategy failures are values, not raises.

Usage
-----
    raise RegistrationInconsistency(external_id="ext-1", attempts=3)

    try:
        ...
    except MediaResolverError as exc:
        body = exc.to_problem()
"""

from typing import Any, Dict, Optional

__all__ = [
    "MediaResolverError",
    "StorageUnavailable",
    "UniqueViolation",
    "RegistrationInconsistency",
    "DiscoveryExhausted",
    "ThumbnailPipelineExhausted",
    "PlaybackExhausted",
    "InvalidStateTransition",
    "ExternalServiceError",
]


# ──────────────────────────────────────────────────────────────
# 📦 Core: MediaResolverError
# ──────────────────────────────────────────────────────────────
class MediaResolverError(Exception):
    """Base error with optional metadata.

    Attributes
    -----------
    message : str
        Human-readable error message.
    code : str
        Stable machine-readable error code.
    retryable : bool
        Whether the caller's own retry policy should apply.
    asset_id : str | None
        VideoAsset id (or external id) for log correlation.
    details : dict | list | str | None
        Machine-readable details (ids, attempts, reasons).
    extra : dict | None
        Additional non-sensitive metadata.
    """

    default_code: str = "media_resolver_error"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        asset_id: Optional[str] = None,
        details: Optional[Any] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.code: str = code or self.default_code
        self.asset_id: Optional[str] = asset_id
        self.details: Optional[Any] = details
        self.extra: Dict[str, Any] = extra or {}

    # ── [Helper] Canonical body ───────────────────────────────────────────
    def to_problem(self) -> Dict[str, Any]:
        """Return a dict matching our problem-like JSON shape."""
        body: Dict[str, Any] = {
            "error": True,
            "message": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }
        if self.asset_id is not None:
            body["asset_id"] = self.asset_id
        if self.details is not None:
            body["details"] = self.details
        # Avoid leaking obvious secrets if someone passed them in `extra`.
        extra_sanitized = dict(self.extra) if self.extra else {}
        for k in ("token", "authorization", "password", "secret"):
            extra_sanitized.pop(k, None)
        body.update(extra_sanitized)
        return body


# ──────────────────────────────────────────────────────────────
# 🗄️ Storage layer
# ──────────────────────────────────────────────────────────────
class StorageUnavailable(MediaResolverError):
    """Relational store could not be reached; transient, the caller retries."""

    default_code = "storage_unavailable"
    retryable = True


class UniqueViolation(MediaResolverError):
    """Insert rejected by the uniqueness constraint on the external processor id."""

    default_code = "unique_violation"

    def __init__(self, external_id: Optional[str], *, details: Optional[Any] = None) -> None:
        super().__init__(
            f"External processor asset id already registered: {external_id}",
            asset_id=external_id,
            details=details,
        )
        self.external_id = external_id


# ──────────────────────────────────────────────────────────────
# 🧾 Registration
# ──────────────────────────────────────────────────────────────
class RegistrationInconsistency(MediaResolverError):
    """
    Uniqueness was violated yet the winning row never became readable.

    Fatal and never retried automatically; surfaced for operator attention.
    """

    default_code = "registration_inconsistency"

    def __init__(self, *, external_id: str, attempts: int) -> None:
        super().__init__(
            f"Registration for external asset {external_id!r} is inconsistent after {attempts} attempt(s)",
            asset_id=external_id,
            details={"external_id": external_id, "attempts": attempts},
        )
        self.external_id = external_id
        self.attempts = attempts


# ──────────────────────────────────────────────────────────────
# 🔎 Discovery / thumbnails / playback
# ──────────────────────────────────────────────────────────────
class DiscoveryExhausted(MediaResolverError):
    """Every candidate location was unreachable; non-fatal."""

    default_code = "discovery_exhausted"
    retryable = True


class ThumbnailPipelineExhausted(MediaResolverError):
    """No thumbnail strategy succeeded. The placeholder makes this a programming error."""

    default_code = "thumbnail_pipeline_exhausted"


class PlaybackExhausted(MediaResolverError):
    """All playback candidates failed at the client. User-visible."""

    default_code = "playback_exhausted"
    user_message = "This video can't be played right now. Please try again later."

    def __init__(self, *, asset_id: Optional[str] = None, tried: Optional[list] = None) -> None:
        super().__init__(
            self.user_message,
            asset_id=asset_id,
            details={"tried": tried or []},
        )


class InvalidStateTransition(MediaResolverError):
    """A processing-state change would break lifecycle monotonicity."""

    default_code = "invalid_state_transition"

    def __init__(self, current: Any, target: Any, *, asset_id: Optional[str] = None) -> None:
        super().__init__(
            f"Cannot move processing state from {getattr(current, 'value', current)} "
            f"to {getattr(target, 'value', target)}",
            asset_id=asset_id,
            details={"from": getattr(current, "value", current), "to": getattr(target, "value", target)},
        )


# ──────────────────────────────────────────────────────────────
# 🌐 External collaborators (processor / transcoder)
# ──────────────────────────────────────────────────────────────
class ExternalServiceError(MediaResolverError):
    """The media processor or secondary transcoder failed or was not ready."""

    default_code = "external_service_error"
    retryable = True

    def __init__(self, message: str, *, service: str, asset_id: Optional[str] = None, details: Optional[Any] = None) -> None:
        super().__init__(message, asset_id=asset_id, details=details, extra={"service": service})
        self.service = service
