from __future__ import annotations

"""
Central enum definitions used across the media resolver.

Design notes
------------
• All enums subclass `str, PyEnum` for JSON-friendly serialization.
• VALUE STRINGS are **stable** once deployed (DB enums depend on them).
• Keep `__all__` in sync when adding new enums.
"""

from enum import Enum as PyEnum


# ──────────────────────────────────────────────────────────────
# Storage
# ──────────────────────────────────────────────────────────────
class BackendType(str, PyEnum):
    """Where bytes are actually served from."""
    OBJECT_STORE = "OBJECT_STORE"          # s3://bucket/key (private, direct)
    CDN = "CDN"                            # CloudFront-fronted object store
    PROCESSOR_STREAM = "PROCESSOR_STREAM"  # external processor (adaptive stream)
    ORIGIN_RELAY = "ORIGIN_RELAY"          # our own pass-through endpoint


class MediaKind(str, PyEnum):
    """Which bytes a discovery is looking for."""
    VIDEO = "VIDEO"
    THUMBNAIL = "THUMBNAIL"


class UnreachableReason(str, PyEnum):
    """Why a probe failed. TIMEOUT and NOT_FOUND get different retry policies."""
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    FORBIDDEN = "FORBIDDEN"
    ERROR = "ERROR"


# ──────────────────────────────────────────────────────────────
# Lifecycle
# ──────────────────────────────────────────────────────────────
class ProcessingState(str, PyEnum):
    """VideoAsset lifecycle. Forward-only except DISCOVERY_FAILED → PENDING."""
    PENDING = "PENDING"
    REGISTERED = "REGISTERED"
    THUMBNAIL_PENDING = "THUMBNAIL_PENDING"
    READY = "READY"
    DISCOVERY_FAILED = "DISCOVERY_FAILED"


class ThumbnailMethod(str, PyEnum):
    """Thumbnail provenance, best first."""
    NATIVE = "native"
    SECONDARY = "secondary"
    PLACEHOLDER = "placeholder"

    @property
    def rank(self) -> int:
        """0 is the highest quality."""
        return _THUMBNAIL_RANK[self]


_THUMBNAIL_RANK = {
    ThumbnailMethod.NATIVE: 0,
    ThumbnailMethod.SECONDARY: 1,
    ThumbnailMethod.PLACEHOLDER: 2,
}


__all__ = [
    "BackendType",
    "MediaKind",
    "UnreachableReason",
    "ProcessingState",
    "ThumbnailMethod",
]
