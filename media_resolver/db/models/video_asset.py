from __future__ import annotations

"""
🎬 Media Resolver — VideoAsset (one registered upload)
=====================================================

Durable record for an uploaded video and everything we learned about where its
bytes live.

Design highlights
-----------------
• **Idempotent registration**: `external_processor_asset_id` carries a UNIQUE
  constraint; it is the only coordination primitive between concurrent
  registrations (no application locks).
• **Ordered storage references**: child rows in `storage_references`, ordered
  by `position` (discovery priority, not reachability).
• **Thumbnail provenance**: flattened `thumbnail_*` columns incl. `method`, so
  a later pass can upgrade placeholder → native.
• **Lifecycle**: `processing_state` enum; rows are never physically deleted here.

Relationships
-------------
• `VideoAsset.storage_references` ↔ `StorageReference.video_asset`
"""

from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    Index,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from media_resolver.db.base_class import Base, TimestampMixin
from media_resolver.schemas.enums import BackendType, ProcessingState, ThumbnailMethod


# ──────────────────────────────────────────────────────────────
# 📦 Model: VideoAsset
# ──────────────────────────────────────────────────────────────
class VideoAsset(TimestampMixin, Base):
    """Registered video and its known storage locations."""

    __tablename__ = "video_assets"

    # ── Identity ──────────────────────────────────────────────
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4, index=True)
    external_processor_asset_id = Column(
        String(255),
        nullable=True,
        doc="Asset id assigned by the external media processor (unique when present).",
    )

    # ── Descriptive ──────────────────────────────────────────
    title = Column(String(512), nullable=True)
    filename = Column(String(1024), nullable=True, index=True)
    upload_key = Column(String(1024), nullable=True, doc="Object-store key at upload time.")
    processor_playback_id = Column(String(255), nullable=True)
    size_bytes = Column(BigInteger, nullable=True)
    content_type = Column(String(127), nullable=True)
    duration_seconds = Column(Float, nullable=True)
    metadata_json = Column("metadata", JSONB, nullable=True, doc="Free-form upload/processor metadata.")

    # ── Thumbnail (single reference + provenance) ────────────
    thumbnail_backend_type = Column(SAEnum(BackendType, name="storage_backend_type"), nullable=True)
    thumbnail_uri = Column(String(2048), nullable=True)
    thumbnail_method = Column(SAEnum(ThumbnailMethod, name="thumbnail_method", values_callable=lambda e: [m.value for m in e]), nullable=True)
    thumbnail_verified_at = Column(DateTime(timezone=True), nullable=True)

    # ── Lifecycle ────────────────────────────────────────────
    processing_state = Column(
        SAEnum(ProcessingState, name="processing_state"),
        nullable=False,
        server_default=text("'PENDING'"),
        index=True,
    )

    __mapper_args__ = {"eager_defaults": True}

    # ─────────────────────────────────────────────────────────
    # 🔒 Constraints & 📇 Indexes
    # ─────────────────────────────────────────────────────────
    __table_args__ = (
        UniqueConstraint("external_processor_asset_id", name="uq_video_assets_external_processor_asset_id"),
        CheckConstraint(
            "(external_processor_asset_id IS NULL) OR (length(btrim(external_processor_asset_id)) > 0)",
            name="external_id_not_blank",
        ),
        CheckConstraint("(size_bytes IS NULL) OR (size_bytes >= 0)", name="size_nonneg"),
        CheckConstraint(
            "(thumbnail_uri IS NULL) = (thumbnail_method IS NULL)",
            name="thumbnail_has_method",
        ),
        CheckConstraint("updated_at >= created_at", name="updated_after_created"),
        Index("ix_video_assets_created_at", "created_at"),
    )

    # ─────────────────────────────────────────────────────────
    # 🔗 Relationships
    # ─────────────────────────────────────────────────────────
    storage_references = relationship(
        "StorageReference",
        back_populates="video_asset",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="StorageReference.position.asc()",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<VideoAsset id={self.id} external={self.external_processor_asset_id} "
            f"state={self.processing_state}>"
        )
