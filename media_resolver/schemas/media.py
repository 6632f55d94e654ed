from __future__ import annotations

"""
Media Resolver • Media Schemas
==============================

Purpose
-------
- Pydantic read/write models shared by repositories and services.
- `VideoAsset` is the storage-agnostic view of a row; repositories build it,
  services never touch ORM objects directly.

Design
------
- `storage_references` keeps insertion order (discovery priority).
- `verified_at` is advisory; use `StorageReference.is_fresh()` before trusting it.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from media_resolver.schemas.enums import (
    BackendType,
    MediaKind,
    ProcessingState,
    ThumbnailMethod,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# === References ============================================================

class StorageReference(BaseModel):
    """(backend, uri, verified_at) triple; equality is by (backend, uri)."""

    model_config = ConfigDict(from_attributes=True)

    backend_type: BackendType
    uri: str = Field(..., min_length=1, max_length=2048)
    verified_at: Optional[datetime] = None

    @field_validator("uri")
    @classmethod
    def _strip_uri(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("uri must not be blank")
        return s

    @property
    def identity(self) -> tuple[BackendType, str]:
        return (self.backend_type, self.uri)

    def is_fresh(self, ttl_seconds: int, *, now: Optional[datetime] = None) -> bool:
        """True when verified within the last `ttl_seconds`."""
        if self.verified_at is None:
            return False
        now = now or utcnow()
        verified = self.verified_at
        if verified.tzinfo is None:
            verified = verified.replace(tzinfo=timezone.utc)
        return now - verified <= timedelta(seconds=ttl_seconds)


class ThumbnailReference(StorageReference):
    """A single thumbnail location plus how it was produced."""

    method: ThumbnailMethod


# === Assets ================================================================

class VideoAssetDraft(BaseModel):
    """Candidate data handed to `find_or_create` by the ingest handler."""

    title: Optional[str] = Field(None, max_length=512)
    filename: Optional[str] = Field(None, max_length=1024)
    upload_key: Optional[str] = Field(None, max_length=1024, description="Object-store key at upload time.")
    processor_playback_id: Optional[str] = Field(None, max_length=255)
    storage_references: List[StorageReference] = Field(default_factory=list)
    size_bytes: Optional[int] = Field(None, ge=0)
    content_type: Optional[str] = Field(None, max_length=127)
    duration_seconds: Optional[float] = Field(None, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    initial_state: Optional[ProcessingState] = None

    @field_validator("storage_references")
    @classmethod
    def _dedupe_references(cls, refs: List[StorageReference]) -> List[StorageReference]:
        seen: set[tuple[BackendType, str]] = set()
        out: List[StorageReference] = []
        for ref in refs:
            if ref.identity in seen:
                continue
            seen.add(ref.identity)
            out.append(ref)
        return out

    @property
    def resolved_initial_state(self) -> ProcessingState:
        """REGISTERED when bytes are already known, PENDING otherwise."""
        if self.initial_state is not None:
            return self.initial_state
        return ProcessingState.REGISTERED if self.storage_references else ProcessingState.PENDING


class VideoAsset(BaseModel):
    """Durable record of one registered video."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    external_processor_asset_id: Optional[str] = None
    title: Optional[str] = None
    filename: Optional[str] = None
    upload_key: Optional[str] = None
    processor_playback_id: Optional[str] = None
    storage_references: List[StorageReference] = Field(default_factory=list)
    thumbnail_reference: Optional[ThumbnailReference] = None
    processing_state: ProcessingState = ProcessingState.PENDING
    size_bytes: Optional[int] = None
    content_type: Optional[str] = None
    duration_seconds: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def references_for(self, backend_type: BackendType) -> List[StorageReference]:
        """Stored references of one backend, in priority order."""
        return [r for r in self.storage_references if r.backend_type == backend_type]


# === Resolver results ======================================================

class StorageCandidate(BaseModel):
    """A plausible location produced by the catalog (no I/O performed)."""

    model_config = ConfigDict(frozen=True)

    backend_type: BackendType
    uri: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    source: str = Field("naming_convention", description="Rule that produced this candidate.")


class DiscoveryAttempt(BaseModel):
    uri: str
    backend_type: BackendType
    reachable: bool
    reason: Optional[str] = None


class DiscoveryResult(BaseModel):
    """Outcome of an any-of search across catalog candidates."""

    found: bool
    kind: MediaKind
    uri: Optional[str] = None
    backend_type: Optional[BackendType] = None
    size_bytes: Optional[int] = None
    content_type: Optional[str] = None
    attempts: List[DiscoveryAttempt] = Field(default_factory=list)
    elapsed_ms: int = 0
    budget_exceeded: bool = False


class PlaybackCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend_type: BackendType
    uri: str


class ThumbnailResult(BaseModel):
    """What a single thumbnail strategy produced."""

    success: bool
    method: ThumbnailMethod
    uri: Optional[str] = None
    backend_type: Optional[BackendType] = None
    error: Optional[str] = None
    # Processor readiness also yields a stream URL worth recording.
    stream_uri: Optional[str] = None


__all__ = [
    "utcnow",
    "StorageReference",
    "ThumbnailReference",
    "VideoAssetDraft",
    "VideoAsset",
    "StorageCandidate",
    "DiscoveryAttempt",
    "DiscoveryResult",
    "PlaybackCandidate",
    "ThumbnailResult",
]
