from __future__ import annotations

"""
Thumbnail Fallback Pipeline
===========================

One pipeline, an explicit ordered list of strategies, first success wins:

    1. native      → the external processor's own poster frame (needs a ready asset)
    2. secondary   → one-frame capture job on the secondary transcoder
    3. placeholder → deterministic SVG built locally; cannot fail

Each strategy returns a `ThumbnailResult` value; failures are logged and the
next strategy runs. The winning reference and its method are persisted, then
the asset moves THUMBNAIL_PENDING → READY. `upgrade()` later re-runs only the
strategies ranked above what is stored (placeholder → native once the
processor is ready).
"""

import asyncio
import base64
import hashlib
import logging
from html import escape
from typing import List, Optional, Sequence
from uuid import UUID

from media_resolver.core.exceptions import ExternalServiceError, ThumbnailPipelineExhausted
from media_resolver.core.metrics import inc_thumbnail_strategy
from media_resolver.repositories.video_assets import VideoAssetNotFound, VideoAssetRepositoryProtocol
from media_resolver.schemas.enums import BackendType, ProcessingState, ThumbnailMethod
from media_resolver.schemas.media import (
    StorageReference,
    ThumbnailReference,
    ThumbnailResult,
    VideoAsset,
    utcnow,
)
from media_resolver.services.catalog import StorageLocationCatalog
from media_resolver.services.lifecycle import try_transition
from media_resolver.services.processor import MediaProcessorClient
from media_resolver.services.transcoder import SecondaryTranscoderClient
from media_resolver.utils.aws import S3StorageError, parse_s3_uri

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Strategies
# ─────────────────────────────────────────────────────────────
class ThumbnailStrategy:
    method: ThumbnailMethod

    async def attempt(self, asset: VideoAsset) -> ThumbnailResult:
        raise NotImplementedError

    def _failed(self, error: str) -> ThumbnailResult:
        return ThumbnailResult(success=False, method=self.method, error=error)


class NativeThumbnailStrategy(ThumbnailStrategy):
    """Poster frame from the external processor, once it reports the asset ready."""

    method = ThumbnailMethod.NATIVE

    def __init__(self, processor: MediaProcessorClient) -> None:
        self.processor = processor

    async def attempt(self, asset: VideoAsset) -> ThumbnailResult:
        if not asset.external_processor_asset_id:
            return self._failed("asset has no external processor id")
        if not self.processor.configured:
            return self._failed("processor credentials not configured")
        try:
            remote = await self.processor.get_asset(asset.external_processor_asset_id)
        except ExternalServiceError as e:
            return self._failed(e.message)
        if not remote.ready:
            return self._failed(f"processor asset status is {remote.status}")
        return ThumbnailResult(
            success=True,
            method=self.method,
            uri=self.processor.thumbnail_url(remote.playback_id),
            backend_type=BackendType.PROCESSOR_STREAM,
            stream_uri=self.processor.stream_url(remote.playback_id),
        )


class SecondaryTranscodeStrategy(ThumbnailStrategy):
    """Frame capture on the secondary transcoder, served via CDN when configured."""

    method = ThumbnailMethod.SECONDARY

    def __init__(self, transcoder: SecondaryTranscoderClient, catalog: StorageLocationCatalog) -> None:
        self.transcoder = transcoder
        self.catalog = catalog

    @staticmethod
    def _source_key(asset: VideoAsset) -> Optional[str]:
        if asset.upload_key:
            return asset.upload_key
        for ref in asset.references_for(BackendType.OBJECT_STORE):
            try:
                return parse_s3_uri(ref.uri)[1]
            except S3StorageError:
                continue
        return None

    async def attempt(self, asset: VideoAsset) -> ThumbnailResult:
        if not self.transcoder.configured:
            return self._failed("secondary transcoder not configured")
        source_key = self._source_key(asset)
        if not source_key:
            return self._failed("no object-store key for the source video")
        try:
            key = await self.transcoder.capture_frame(str(asset.id), source_key, title=asset.title)
        except ExternalServiceError as e:
            return self._failed(e.message)

        cdn = self.catalog.cdn_url(key)
        if cdn:
            return ThumbnailResult(success=True, method=self.method, uri=cdn, backend_type=BackendType.CDN)
        direct = self.catalog.object_uri(key)
        if direct:
            return ThumbnailResult(success=True, method=self.method, uri=direct, backend_type=BackendType.OBJECT_STORE)
        return self._failed(f"no public location for {key}")


_PALETTE = (
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4", "#FFEAA7",
    "#DDA0DD", "#98D8C8", "#FF8A80", "#82B1FF", "#B39DDB",
    "#F8BBD9", "#C5E1A5", "#FFE082", "#FFAB91", "#80CBC4",
)


def render_placeholder_svg(asset_id: str, title: Optional[str] = None) -> str:
    """1280x720 SVG whose colors and pattern depend only on (asset_id, title)."""
    digest = hashlib.sha256(f"{asset_id}|{title or ''}".encode("utf-8")).digest()
    primary = _PALETTE[digest[0] % len(_PALETTE)]
    secondary = _PALETTE[digest[1] % len(_PALETTE)]
    label = escape((title or asset_id)[:40])
    badge = escape(asset_id[:8].upper())
    if digest[2] % 2:
        pattern = (
            f'<circle cx="200" cy="150" r="80" fill="{secondary}" opacity="0.3"/>'
            f'<circle cx="1080" cy="200" r="60" fill="{primary}" opacity="0.4"/>'
            f'<circle cx="300" cy="560" r="100" fill="{secondary}" opacity="0.2"/>'
        )
    else:
        pattern = (
            f'<path d="M0,300 Q320,200 640,300 T1280,300" stroke="{secondary}" stroke-width="3" fill="none" opacity="0.4"/>'
            f'<path d="M0,420 Q320,520 640,420 T1280,420" stroke="{primary}" stroke-width="2" fill="none" opacity="0.3"/>'
        )
    return (
        '<svg width="1280" height="720" xmlns="http://www.w3.org/2000/svg">'
        '<defs><linearGradient id="bg" x1="0%" y1="0%" x2="100%" y2="100%">'
        f'<stop offset="0%" stop-color="{primary}" stop-opacity="0.8"/>'
        f'<stop offset="100%" stop-color="{secondary}" stop-opacity="0.5"/>'
        '</linearGradient></defs>'
        '<rect width="1280" height="720" fill="url(#bg)"/>'
        f"{pattern}"
        '<circle cx="640" cy="300" r="80" fill="rgba(255,255,255,0.95)"/>'
        f'<polygon points="610,270 610,330 690,300" fill="{primary}"/>'
        '<rect x="40" y="400" width="1200" height="80" rx="10" fill="rgba(0,0,0,0.7)"/>'
        '<text x="640" y="452" font-family="Arial, sans-serif" font-size="36" font-weight="bold" '
        f'fill="white" text-anchor="middle">{label}</text>'
        '<rect x="40" y="40" width="240" height="50" rx="25" fill="rgba(0,0,0,0.8)"/>'
        '<text x="160" y="72" font-family="Arial, sans-serif" font-size="18" font-weight="bold" '
        f'fill="{primary}" text-anchor="middle">ID: {badge}</text>'
        "</svg>"
    )


class PlaceholderThumbnailStrategy(ThumbnailStrategy):
    """Inline SVG data URL; always succeeds."""

    method = ThumbnailMethod.PLACEHOLDER

    async def attempt(self, asset: VideoAsset) -> ThumbnailResult:
        svg = render_placeholder_svg(str(asset.id), asset.title)
        encoded = base64.b64encode(svg.encode("utf-8")).decode("ascii")
        return ThumbnailResult(
            success=True,
            method=self.method,
            uri=f"data:image/svg+xml;base64,{encoded}",
            # generated and served by us
            backend_type=BackendType.ORIGIN_RELAY,
        )


def default_strategies(
    processor: MediaProcessorClient,
    transcoder: SecondaryTranscoderClient,
    catalog: StorageLocationCatalog,
) -> List[ThumbnailStrategy]:
    return [
        NativeThumbnailStrategy(processor),
        SecondaryTranscodeStrategy(transcoder, catalog),
        PlaceholderThumbnailStrategy(),
    ]


# ─────────────────────────────────────────────────────────────
# Pipeline
# ─────────────────────────────────────────────────────────────
class ThumbnailPipeline:
    def __init__(self, repo: VideoAssetRepositoryProtocol, strategies: Sequence[ThumbnailStrategy]) -> None:
        self.repo = repo
        self.strategies = list(strategies)

    async def _load(self, asset_id: UUID) -> VideoAsset:
        asset = await self.repo.get(asset_id)
        if asset is None:
            raise VideoAssetNotFound(str(asset_id))
        return asset

    async def _first_success(self, asset: VideoAsset, strategies: Sequence[ThumbnailStrategy]) -> Optional[ThumbnailResult]:
        for strategy in strategies:
            try:
                result = await strategy.attempt(asset)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("thumbnail strategy %s crashed for %s: %s", strategy.method.value, asset.id, e)
                result = ThumbnailResult(success=False, method=strategy.method, error=str(e))

            if result.success and result.uri and result.backend_type:
                inc_thumbnail_strategy(strategy.method.value, "success")
                logger.info("thumbnail for %s produced by %s", asset.id, strategy.method.value)
                return result
            inc_thumbnail_strategy(strategy.method.value, "failure")
            logger.warning(
                "thumbnail strategy %s failed for %s: %s", strategy.method.value, asset.id, result.error or "no uri"
            )
        return None

    async def _persist(self, asset: VideoAsset, result: ThumbnailResult) -> VideoAsset:
        if result.stream_uri:
            # a ready answer from the processor counts as verification of its stream
            asset = await self.repo.add_storage_reference(
                asset.id,
                StorageReference(
                    backend_type=BackendType.PROCESSOR_STREAM, uri=result.stream_uri, verified_at=utcnow()
                ),
            )
        return await self.repo.set_thumbnail(
            asset.id,
            ThumbnailReference(backend_type=result.backend_type, uri=result.uri, method=result.method),
        )

    async def run(self, asset_id: UUID) -> ThumbnailResult:
        """
        Produce and persist a thumbnail, then mark the asset READY.

        Raises
        ------
        ThumbnailPipelineExhausted
            Every strategy failed (impossible while the placeholder is last).
        """
        asset = await self._load(asset_id)
        if asset.processing_state == ProcessingState.REGISTERED:
            asset = await try_transition(self.repo, asset, ProcessingState.THUMBNAIL_PENDING) or asset

        result = await self._first_success(asset, self.strategies)
        if result is None:
            logger.error("all thumbnail strategies failed for %s", asset.id)
            raise ThumbnailPipelineExhausted("No thumbnail strategy succeeded", asset_id=str(asset.id))

        asset = await self._persist(asset, result)
        await try_transition(self.repo, asset, ProcessingState.READY)
        return result

    async def upgrade(self, asset_id: UUID) -> Optional[ThumbnailResult]:
        """Re-run strategies ranked above the stored method; None if nothing better."""
        asset = await self._load(asset_id)
        current = asset.thumbnail_reference
        if current is None:
            return await self.run(asset_id)

        better = [s for s in self.strategies if s.method.rank < current.method.rank]
        if not better:
            return None
        result = await self._first_success(asset, better)
        if result is None:
            logger.info("no thumbnail upgrade available for %s (still %s)", asset.id, current.method.value)
            return None

        asset = await self._persist(asset, result)
        logger.info("upgraded thumbnail for %s: %s → %s", asset.id, current.method.value, result.method.value)
        await try_transition(self.repo, asset, ProcessingState.READY)
        return result


__all__ = [
    "ThumbnailStrategy",
    "NativeThumbnailStrategy",
    "SecondaryTranscodeStrategy",
    "PlaceholderThumbnailStrategy",
    "render_placeholder_svg",
    "default_strategies",
    "ThumbnailPipeline",
]
