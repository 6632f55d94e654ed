# media_resolver/db/base.py
"""
Media Resolver — SQLAlchemy Base registry
=========================================

Import all ORM models so their tables are registered on `Base.metadata`.
Used by Alembic autogeneration and the test schema bootstrap.

Tip: Keep this file import-only; no runtime logic.
"""

from media_resolver.db.base_class import Base

from media_resolver.db.models.video_asset import VideoAsset
from media_resolver.db.models.storage_reference import StorageReference

__all__ = [
    "Base",
    "VideoAsset",
    "StorageReference",
]
