from __future__ import annotations

"""
Media Resolver — StorageReference (one known location of a video's bytes)

Ordered child rows of `VideoAsset`. `position` is the discovery priority;
`verified_at` is stamped only right after a successful probe.
"""

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from media_resolver.db.base_class import Base
from media_resolver.schemas.enums import BackendType


class StorageReference(Base):
    __tablename__ = "storage_references"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    video_asset_id = Column(
        UUID(as_uuid=True),
        ForeignKey("video_assets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    backend_type = Column(SAEnum(BackendType, name="storage_backend_type"), nullable=False)
    uri = Column(String(2048), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("video_asset_id", "backend_type", "uri", name="uq_storage_references_asset_backend_uri"),
        CheckConstraint("position >= 0", name="position_nonneg"),
        CheckConstraint("length(btrim(uri)) > 0", name="uri_not_blank"),
    )

    video_asset = relationship("VideoAsset", back_populates="storage_references")
