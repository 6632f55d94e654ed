from __future__ import annotations

"""
VideoAsset repositories.

The registration resolver relies on exactly one coordination primitive: the
store rejects a second row for the same `external_processor_asset_id` with
`UniqueViolation`. Both implementations honor that contract:

- `MemoryVideoAssetRepository` — dev/tests; the uniqueness check and the
  insert happen without an intervening await, so it behaves like a constraint.
- `SqlAlchemyVideoAssetRepository` — PostgreSQL; the UNIQUE constraint on
  `video_assets.external_processor_asset_id` does the work, `IntegrityError`
  is mapped to `UniqueViolation` and connectivity errors to `StorageUnavailable`.

Select an implementation with `VIDEO_ASSET_REPOSITORY_IMPL=module.sub:ClassName`.
"""

import copy
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, Iterable, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from media_resolver.core.config import settings
from media_resolver.core.exceptions import StorageUnavailable, UniqueViolation
from media_resolver.core.metrics import inc_db_error
from media_resolver.db.models import StorageReference as StorageReferenceRow
from media_resolver.db.models import VideoAsset as VideoAssetRow
from media_resolver.db.session import transactional_async_session
from media_resolver.schemas.enums import ProcessingState
from media_resolver.schemas.media import (
    StorageReference,
    ThumbnailReference,
    VideoAsset,
    VideoAssetDraft,
    utcnow,
)

logger = logging.getLogger(__name__)

EXTERNAL_ID_CONSTRAINT = "uq_video_assets_external_processor_asset_id"
_PG_UNIQUE_VIOLATION = "23505"


class VideoAssetNotFound(LookupError):
    """Raised by mutators when the asset id does not exist."""


class VideoAssetRepositoryProtocol:
    async def get(self, asset_id: UUID) -> Optional[VideoAsset]:
        raise NotImplementedError

    async def get_by_external_id(self, external_id: str) -> Optional[VideoAsset]:
        raise NotImplementedError

    async def insert(self, external_id: Optional[str], draft: VideoAssetDraft) -> VideoAsset:
        """Create one row. Raises `UniqueViolation` when `external_id` is taken."""
        raise NotImplementedError

    async def add_storage_reference(self, asset_id: UUID, ref: StorageReference, *, prepend: bool = False) -> VideoAsset:
        raise NotImplementedError

    async def mark_verified(self, asset_id: UUID, uris: Iterable[str], verified_at: datetime) -> VideoAsset:
        raise NotImplementedError

    async def set_thumbnail(self, asset_id: UUID, thumbnail: ThumbnailReference) -> VideoAsset:
        raise NotImplementedError

    async def set_processing_state(self, asset_id: UUID, state: ProcessingState) -> VideoAsset:
        raise NotImplementedError


def _merge_reference(refs: List[StorageReference], ref: StorageReference, *, prepend: bool) -> List[StorageReference]:
    """Insert `ref` keeping (backend, uri) unique; an existing entry is moved, its newer verified_at kept."""
    existing = next((r for r in refs if r.identity == ref.identity), None)
    rest = [r for r in refs if r.identity != ref.identity]
    if existing is not None and existing.verified_at and (ref.verified_at is None or existing.verified_at > ref.verified_at):
        ref = ref.model_copy(update={"verified_at": existing.verified_at})
    if existing is not None and not prepend:
        # keep original slot
        return [ref if r.identity == ref.identity else r for r in refs]
    return [ref, *rest] if prepend else [*rest, ref]


# ─────────────────────────────────────────────────────────────
# In-memory implementation
# ─────────────────────────────────────────────────────────────
class MemoryVideoAssetRepository(VideoAssetRepositoryProtocol):
    def __init__(self) -> None:
        self._assets: Dict[UUID, VideoAsset] = {}
        self._by_external: Dict[str, UUID] = {}
        self.insert_calls = 0

    def _load(self, asset_id: UUID) -> VideoAsset:
        asset = self._assets.get(asset_id)
        if asset is None:
            raise VideoAssetNotFound(str(asset_id))
        return asset

    def _save(self, asset: VideoAsset) -> VideoAsset:
        asset.updated_at = utcnow()
        self._assets[asset.id] = asset
        return asset.model_copy(deep=True)

    async def get(self, asset_id: UUID) -> Optional[VideoAsset]:
        asset = self._assets.get(asset_id)
        return asset.model_copy(deep=True) if asset else None

    async def get_by_external_id(self, external_id: str) -> Optional[VideoAsset]:
        asset_id = self._by_external.get(external_id)
        return await self.get(asset_id) if asset_id else None

    async def insert(self, external_id: Optional[str], draft: VideoAssetDraft) -> VideoAsset:
        self.insert_calls += 1
        # Check-and-insert with no await in between: behaves like a constraint.
        if external_id is not None and external_id in self._by_external:
            raise UniqueViolation(external_id)
        now = utcnow()
        asset = VideoAsset(
            id=uuid4(),
            external_processor_asset_id=external_id,
            title=draft.title,
            filename=draft.filename,
            upload_key=draft.upload_key,
            processor_playback_id=draft.processor_playback_id,
            storage_references=[r.model_copy() for r in draft.storage_references],
            processing_state=draft.resolved_initial_state,
            size_bytes=draft.size_bytes,
            content_type=draft.content_type,
            duration_seconds=draft.duration_seconds,
            metadata=copy.deepcopy(draft.metadata),
            created_at=now,
            updated_at=now,
        )
        self._assets[asset.id] = asset
        if external_id is not None:
            self._by_external[external_id] = asset.id
        return asset.model_copy(deep=True)

    async def add_storage_reference(self, asset_id: UUID, ref: StorageReference, *, prepend: bool = False) -> VideoAsset:
        asset = self._load(asset_id)
        asset.storage_references = _merge_reference(asset.storage_references, ref, prepend=prepend)
        return self._save(asset)

    async def mark_verified(self, asset_id: UUID, uris: Iterable[str], verified_at: datetime) -> VideoAsset:
        asset = self._load(asset_id)
        wanted = set(uris)
        asset.storage_references = [
            r.model_copy(update={"verified_at": verified_at}) if r.uri in wanted else r
            for r in asset.storage_references
        ]
        if asset.thumbnail_reference and asset.thumbnail_reference.uri in wanted:
            asset.thumbnail_reference = asset.thumbnail_reference.model_copy(update={"verified_at": verified_at})
        return self._save(asset)

    async def set_thumbnail(self, asset_id: UUID, thumbnail: ThumbnailReference) -> VideoAsset:
        asset = self._load(asset_id)
        asset.thumbnail_reference = thumbnail.model_copy()
        return self._save(asset)

    async def set_processing_state(self, asset_id: UUID, state: ProcessingState) -> VideoAsset:
        asset = self._load(asset_id)
        asset.processing_state = state
        return self._save(asset)


# ─────────────────────────────────────────────────────────────
# SQLAlchemy (PostgreSQL) implementation
# ─────────────────────────────────────────────────────────────
def _is_external_id_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    constraint = getattr(orig, "constraint_name", None) or getattr(getattr(orig, "diag", None), "constraint_name", None)
    if constraint:
        return constraint == EXTERNAL_ID_CONSTRAINT
    text = str(exc)
    if code and code != _PG_UNIQUE_VIOLATION:
        return False
    return EXTERNAL_ID_CONSTRAINT in text or "external_processor_asset_id" in text


def _row_to_schema(row: VideoAssetRow) -> VideoAsset:
    thumbnail = None
    if row.thumbnail_uri and row.thumbnail_method:
        thumbnail = ThumbnailReference(
            backend_type=row.thumbnail_backend_type,
            uri=row.thumbnail_uri,
            method=row.thumbnail_method,
            verified_at=row.thumbnail_verified_at,
        )
    return VideoAsset(
        id=row.id,
        external_processor_asset_id=row.external_processor_asset_id,
        title=row.title,
        filename=row.filename,
        upload_key=row.upload_key,
        processor_playback_id=row.processor_playback_id,
        storage_references=[
            StorageReference(backend_type=r.backend_type, uri=r.uri, verified_at=r.verified_at)
            for r in row.storage_references
        ],
        thumbnail_reference=thumbnail,
        processing_state=row.processing_state,
        size_bytes=row.size_bytes,
        content_type=row.content_type,
        duration_seconds=row.duration_seconds,
        metadata=dict(row.metadata_json or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlAlchemyVideoAssetRepository(VideoAssetRepositoryProtocol):
    """Async SQLAlchemy repository; one short transaction per call."""

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None) -> None:
        self._session_maker = session_maker

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with transactional_async_session(self._session_maker) as session:
                yield session
        except (OperationalError, InterfaceError) as e:
            inc_db_error("video_assets")
            raise StorageUnavailable("Video asset store is unreachable", details={"error": str(e.orig)}) from e
        except DBAPIError as e:
            if e.connection_invalidated:
                inc_db_error("video_assets")
                raise StorageUnavailable("Video asset store connection was lost") from e
            raise
        except (OSError, ConnectionError) as e:
            inc_db_error("video_assets")
            raise StorageUnavailable("Video asset store is unreachable", details={"error": str(e)}) from e

    async def _load(self, session: AsyncSession, asset_id: UUID) -> VideoAssetRow:
        row = await session.get(VideoAssetRow, asset_id)
        if row is None:
            raise VideoAssetNotFound(str(asset_id))
        return row

    async def _flush_and_convert(self, session: AsyncSession, row: VideoAssetRow) -> VideoAsset:
        await session.flush()
        await session.refresh(row)
        return _row_to_schema(row)

    async def get(self, asset_id: UUID) -> Optional[VideoAsset]:
        async with self._transaction() as session:
            row = await session.get(VideoAssetRow, asset_id)
            return _row_to_schema(row) if row else None

    async def get_by_external_id(self, external_id: str) -> Optional[VideoAsset]:
        async with self._transaction() as session:
            res = await session.execute(
                select(VideoAssetRow).where(VideoAssetRow.external_processor_asset_id == external_id)
            )
            row = res.scalars().first()
            return _row_to_schema(row) if row else None

    async def insert(self, external_id: Optional[str], draft: VideoAssetDraft) -> VideoAsset:
        async with self._transaction() as session:
            row = VideoAssetRow(
                id=uuid4(),
                external_processor_asset_id=external_id,
                title=draft.title,
                filename=draft.filename,
                upload_key=draft.upload_key,
                processor_playback_id=draft.processor_playback_id,
                size_bytes=draft.size_bytes,
                content_type=draft.content_type,
                duration_seconds=draft.duration_seconds,
                metadata_json=draft.metadata or None,
                processing_state=draft.resolved_initial_state,
            )
            row.storage_references = [
                StorageReferenceRow(backend_type=r.backend_type, uri=r.uri, position=i, verified_at=r.verified_at)
                for i, r in enumerate(draft.storage_references)
            ]
            session.add(row)
            try:
                return await self._flush_and_convert(session, row)
            except IntegrityError as e:
                if _is_external_id_violation(e):
                    raise UniqueViolation(external_id) from e
                raise

    async def add_storage_reference(self, asset_id: UUID, ref: StorageReference, *, prepend: bool = False) -> VideoAsset:
        async with self._transaction() as session:
            row = await self._load(session, asset_id)
            current = [
                StorageReference(backend_type=r.backend_type, uri=r.uri, verified_at=r.verified_at)
                for r in row.storage_references
            ]
            merged = _merge_reference(current, ref, prepend=prepend)
            by_identity = {(r.backend_type, r.uri): r for r in row.storage_references}
            for position, item in enumerate(merged):
                existing = by_identity.get(item.identity)
                if existing is None:
                    row.storage_references.append(
                        StorageReferenceRow(
                            backend_type=item.backend_type,
                            uri=item.uri,
                            position=position,
                            verified_at=item.verified_at,
                        )
                    )
                else:
                    existing.position = position
                    existing.verified_at = item.verified_at
            return await self._flush_and_convert(session, row)

    async def mark_verified(self, asset_id: UUID, uris: Iterable[str], verified_at: datetime) -> VideoAsset:
        wanted = set(uris)
        async with self._transaction() as session:
            row = await self._load(session, asset_id)
            for ref in row.storage_references:
                if ref.uri in wanted:
                    ref.verified_at = verified_at
            if row.thumbnail_uri in wanted:
                row.thumbnail_verified_at = verified_at
            return await self._flush_and_convert(session, row)

    async def set_thumbnail(self, asset_id: UUID, thumbnail: ThumbnailReference) -> VideoAsset:
        async with self._transaction() as session:
            row = await self._load(session, asset_id)
            row.thumbnail_backend_type = thumbnail.backend_type
            row.thumbnail_uri = thumbnail.uri
            row.thumbnail_method = thumbnail.method
            row.thumbnail_verified_at = thumbnail.verified_at
            return await self._flush_and_convert(session, row)

    async def set_processing_state(self, asset_id: UUID, state: ProcessingState) -> VideoAsset:
        async with self._transaction() as session:
            row = await self._load(session, asset_id)
            row.processing_state = state
            return await self._flush_and_convert(session, row)


def _import_string(path: str):
    module_path, _, class_name = path.partition(":")
    if not module_path or not class_name:
        raise ValueError("VIDEO_ASSET_REPOSITORY_IMPL must be 'module.sub:ClassName'")
    module = __import__(module_path, fromlist=[class_name])
    return getattr(module, class_name)


def get_video_asset_repository() -> VideoAssetRepositoryProtocol:
    """Configured implementation; in-memory only in development."""
    impl_path = settings.VIDEO_ASSET_REPOSITORY_IMPL
    if impl_path:
        cls = _import_string(impl_path)
        return cls()  # type: ignore
    if settings.ENV == "development":
        return MemoryVideoAssetRepository()
    return SqlAlchemyVideoAssetRepository()


__all__ = [
    "EXTERNAL_ID_CONSTRAINT",
    "VideoAssetNotFound",
    "VideoAssetRepositoryProtocol",
    "MemoryVideoAssetRepository",
    "SqlAlchemyVideoAssetRepository",
    "get_video_asset_repository",
]
