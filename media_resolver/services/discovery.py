from __future__ import annotations

"""
Media Discovery Service
=======================

Any-of search: walk the catalog's candidates for one media kind in order,
probe each, return the first reachable. `discover()` never writes to the
asset; persisting what it found is the job of `MediaRepairService`.

The whole search is bounded by an aggregate budget (by default the sum of the
per-probe timeouts), so a dead backend cannot stall a request.
"""

import logging
import time
from typing import Collection, List, Optional
from uuid import UUID

from media_resolver.core.config import settings
from media_resolver.core.exceptions import DiscoveryExhausted
from media_resolver.core.metrics import inc_discovery
from media_resolver.repositories.video_assets import VideoAssetNotFound, VideoAssetRepositoryProtocol
from media_resolver.schemas.enums import BackendType, MediaKind, ProcessingState, ThumbnailMethod
from media_resolver.schemas.media import (
    DiscoveryAttempt,
    DiscoveryResult,
    StorageReference,
    ThumbnailReference,
    VideoAsset,
    utcnow,
)
from media_resolver.services.catalog import StorageLocationCatalog
from media_resolver.services.lifecycle import try_transition
from media_resolver.services.probe import ProbeEngine

logger = logging.getLogger(__name__)


class MediaDiscoveryService:
    def __init__(
        self,
        repo: VideoAssetRepositoryProtocol,
        *,
        catalog: Optional[StorageLocationCatalog] = None,
        probe: Optional[ProbeEngine] = None,
        video_timeout: Optional[float] = None,
        thumbnail_timeout: Optional[float] = None,
        budget_seconds: Optional[float] = None,
    ) -> None:
        self.repo = repo
        self.catalog = catalog or StorageLocationCatalog()
        self.probe = probe or ProbeEngine()
        self.video_timeout = video_timeout if video_timeout is not None else settings.PROBE_TIMEOUT_SECONDS
        self.thumbnail_timeout = (
            thumbnail_timeout if thumbnail_timeout is not None else settings.THUMBNAIL_PROBE_TIMEOUT_SECONDS
        )
        self.budget_seconds = budget_seconds

    def timeout_for(self, kind: MediaKind) -> float:
        return self.video_timeout if kind == MediaKind.VIDEO else self.thumbnail_timeout

    async def discover(self, asset_id: UUID, kind: MediaKind) -> DiscoveryResult:
        """Search every plausible location of `asset_id`'s `kind` bytes."""
        asset = await self.repo.get(asset_id)
        if asset is None:
            candidates = self.catalog.candidates(kind, asset_id=str(asset_id))
            return await self._search(str(asset_id), kind, candidates)
        return await self.discover_for(asset, kind)

    async def discover_for(
        self,
        asset: VideoAsset,
        kind: MediaKind,
        *,
        exclude: Collection[str] = (),
    ) -> DiscoveryResult:
        """`discover()` for an already-loaded asset, skipping `exclude` URIs."""
        candidates = [c for c in self.catalog.candidates_for(asset, kind) if c.uri not in exclude]
        return await self._search(str(asset.id), kind, candidates)

    async def discover_or_raise(self, asset_id: UUID, kind: MediaKind) -> DiscoveryResult:
        result = await self.discover(asset_id, kind)
        if not result.found:
            raise DiscoveryExhausted(
                f"No reachable {kind.value.lower()} location",
                asset_id=str(asset_id),
                details=[a.model_dump(mode="json") for a in result.attempts],
            )
        return result

    async def _search(self, asset_id: str, kind: MediaKind, candidates) -> DiscoveryResult:
        per_probe = self.timeout_for(kind)
        budget = self.budget_seconds if self.budget_seconds is not None else per_probe * max(len(candidates), 1)
        started = time.monotonic()
        attempts: List[DiscoveryAttempt] = []

        for candidate in candidates:
            remaining = budget - (time.monotonic() - started)
            if remaining <= 0:
                logger.warning(
                    "discovery budget (%.1fs) spent for %s %s after %d probe(s)",
                    budget, kind.value, asset_id, len(attempts),
                )
                inc_discovery(kind.value, "budget_exceeded")
                return DiscoveryResult(
                    found=False,
                    kind=kind,
                    attempts=attempts,
                    elapsed_ms=int((time.monotonic() - started) * 1000),
                    budget_exceeded=True,
                )

            result = await self.probe.probe(candidate.uri, timeout=min(per_probe, remaining))
            if result.reachable:
                attempts.append(
                    DiscoveryAttempt(uri=candidate.uri, backend_type=candidate.backend_type, reachable=True)
                )
                inc_discovery(kind.value, "found")
                logger.info("discovered %s for %s at %s", kind.value, asset_id, candidate.uri)
                return DiscoveryResult(
                    found=True,
                    kind=kind,
                    uri=candidate.uri,
                    backend_type=candidate.backend_type,
                    size_bytes=result.size_bytes,
                    content_type=result.content_type,
                    attempts=attempts,
                    elapsed_ms=int((time.monotonic() - started) * 1000),
                )
            attempts.append(
                DiscoveryAttempt(
                    uri=candidate.uri,
                    backend_type=candidate.backend_type,
                    reachable=False,
                    reason=result.reason.value,
                )
            )

        inc_discovery(kind.value, "not_found")
        logger.info("no reachable %s for %s (%d candidate(s))", kind.value, asset_id, len(attempts))
        return DiscoveryResult(
            found=False,
            kind=kind,
            attempts=attempts,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )


# ─────────────────────────────────────────────────────────────
# Repair: persist what discovery learns
# ─────────────────────────────────────────────────────────────
class MediaRepairService:
    """
    Re-verifies stored references and falls back to discovery.

    - Fresh references (verified within the TTL) are trusted without probing.
    - Stale ones are re-probed; reachable ones get `verified_at` stamped.
    - A discovered location is prepended to the asset's references.
    - A video that cannot be found anywhere moves the asset to DISCOVERY_FAILED.
    """

    def __init__(
        self,
        repo: VideoAssetRepositoryProtocol,
        discovery: MediaDiscoveryService,
        *,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        self.repo = repo
        self.discovery = discovery
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.VERIFIED_TTL_SECONDS

    async def _load(self, asset_id: UUID) -> VideoAsset:
        asset = await self.repo.get(asset_id)
        if asset is None:
            raise VideoAssetNotFound(str(asset_id))
        return asset

    async def verify_or_repair(self, asset_id: UUID, kind: MediaKind = MediaKind.VIDEO) -> DiscoveryResult:
        asset = await self._load(asset_id)
        if kind == MediaKind.VIDEO:
            return await self._repair_video(asset)
        return await self._repair_thumbnail(asset)

    async def retry_failed(self, asset_id: UUID) -> DiscoveryResult:
        """DISCOVERY_FAILED → PENDING, then search again."""
        asset = await self._load(asset_id)
        if asset.processing_state == ProcessingState.DISCOVERY_FAILED:
            asset = await try_transition(self.repo, asset, ProcessingState.PENDING) or asset
        return await self._repair_video(asset)

    async def _reverify(self, asset: VideoAsset, refs: List[StorageReference], kind: MediaKind) -> Optional[DiscoveryResult]:
        now = utcnow()
        fresh = next((r for r in refs if r.is_fresh(self.ttl_seconds, now=now)), None)
        if fresh is not None:
            return DiscoveryResult(found=True, kind=kind, uri=fresh.uri, backend_type=fresh.backend_type)

        timeout = self.discovery.timeout_for(kind)
        attempts: List[DiscoveryAttempt] = []
        for ref in refs:
            result = await self.discovery.probe.probe(ref.uri, timeout=timeout)
            attempts.append(
                DiscoveryAttempt(
                    uri=ref.uri,
                    backend_type=ref.backend_type,
                    reachable=result.reachable,
                    reason=None if result.reachable else result.reason.value,
                )
            )
            if result.reachable:
                await self.repo.mark_verified(asset.id, [ref.uri], utcnow())
                return DiscoveryResult(
                    found=True,
                    kind=kind,
                    uri=ref.uri,
                    backend_type=ref.backend_type,
                    size_bytes=result.size_bytes,
                    content_type=result.content_type,
                    attempts=attempts,
                )
        return None

    async def _repair_video(self, asset: VideoAsset) -> DiscoveryResult:
        stored = [r for r in asset.storage_references if r.backend_type != BackendType.ORIGIN_RELAY]
        verified = await self._reverify(asset, stored, MediaKind.VIDEO)
        if verified is not None:
            if asset.processing_state == ProcessingState.PENDING:
                await try_transition(self.repo, asset, ProcessingState.REGISTERED)
            return verified

        result = await self.discovery.discover_for(asset, MediaKind.VIDEO, exclude={r.uri for r in stored})
        if result.found:
            ref = StorageReference(backend_type=result.backend_type, uri=result.uri, verified_at=utcnow())
            asset = await self.repo.add_storage_reference(asset.id, ref, prepend=True)
            logger.info("repaired video reference for %s → %s", asset.id, result.uri)
            if asset.processing_state == ProcessingState.PENDING:
                await try_transition(self.repo, asset, ProcessingState.REGISTERED)
            return result

        logger.warning("video for %s not found on any backend", asset.id)
        await try_transition(self.repo, asset, ProcessingState.DISCOVERY_FAILED)
        return result

    async def _repair_thumbnail(self, asset: VideoAsset) -> DiscoveryResult:
        current = asset.thumbnail_reference
        if current is not None:
            if current.uri.startswith("data:"):
                return DiscoveryResult(
                    found=True, kind=MediaKind.THUMBNAIL, uri=current.uri, backend_type=current.backend_type
                )
            verified = await self._reverify(asset, [current], MediaKind.THUMBNAIL)
            if verified is not None:
                return verified

        exclude = {current.uri} if current is not None else set()
        result = await self.discovery.discover_for(asset, MediaKind.THUMBNAIL, exclude=exclude)
        if result.found:
            method = (
                ThumbnailMethod.NATIVE if result.backend_type == BackendType.PROCESSOR_STREAM
                else ThumbnailMethod.SECONDARY
            )
            await self.repo.set_thumbnail(
                asset.id,
                ThumbnailReference(
                    backend_type=result.backend_type,
                    uri=result.uri,
                    method=method,
                    verified_at=utcnow(),
                ),
            )
            logger.info("repaired thumbnail for %s → %s", asset.id, result.uri)
        return result


__all__ = ["MediaDiscoveryService", "MediaRepairService"]
