from __future__ import annotations

"""
🏗️ Media Resolver • Wiring
==========================

Builds the full service graph from `settings` so host applications (upload
handlers, playback endpoints, background repair jobs) share one set of clients.

    async with media_resolver_lifespan() as resolver:
        asset, created = await resolver.registration.find_or_create(ext_id, draft)
        await resolver.thumbnails.run(asset.id)
        candidates = resolver.playback.resolve_candidates(asset)

Startup configures logging; shutdown closes the probe's HTTP pool and disposes
the database engine (best-effort, never masks the body's exception).
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from media_resolver.core.config import settings
from media_resolver.core.logger import setup_logging
from media_resolver.db.session import dispose_async_engine
from media_resolver.repositories.video_assets import (
    SqlAlchemyVideoAssetRepository,
    VideoAssetRepositoryProtocol,
    get_video_asset_repository,
)
from media_resolver.services.catalog import StorageLocationCatalog
from media_resolver.services.discovery import MediaDiscoveryService, MediaRepairService
from media_resolver.services.playback import PlaybackResolver
from media_resolver.services.probe import ProbeEngine
from media_resolver.services.processor import MediaProcessorClient
from media_resolver.services.registration import AssetRegistrationResolver
from media_resolver.services.thumbnails import ThumbnailPipeline, default_strategies
from media_resolver.services.transcoder import SecondaryTranscoderClient
from media_resolver.utils.aws import S3Client

logger = logging.getLogger(__name__)


@dataclass
class MediaResolver:
    repo: VideoAssetRepositoryProtocol
    catalog: StorageLocationCatalog
    probe: ProbeEngine
    registration: AssetRegistrationResolver
    discovery: MediaDiscoveryService
    repair: MediaRepairService
    thumbnails: ThumbnailPipeline
    playback: PlaybackResolver

    async def aclose(self) -> None:
        await self.probe.aclose()
        if isinstance(self.repo, SqlAlchemyVideoAssetRepository):
            await dispose_async_engine()


def create_resolver(
    *,
    repo: Optional[VideoAssetRepositoryProtocol] = None,
    probe: Optional[ProbeEngine] = None,
    processor: Optional[MediaProcessorClient] = None,
    transcoder: Optional[SecondaryTranscoderClient] = None,
) -> MediaResolver:
    """Assemble the services; any collaborator can be injected (tests, custom hosts)."""
    repo = repo or get_video_asset_repository()
    catalog = StorageLocationCatalog()
    probe = probe or ProbeEngine()
    discovery = MediaDiscoveryService(repo, catalog=catalog, probe=probe)

    signer = None
    if settings.AWS_BUCKET_NAME:
        s3 = S3Client()
        ttl = settings.PRESIGNED_GET_TTL_SECONDS

        def signer(uri: str) -> str:
            return s3.presigned_get_for_uri(uri, expires_in=ttl)

    strategies = default_strategies(
        processor or MediaProcessorClient(),
        transcoder or SecondaryTranscoderClient(),
        catalog,
    )
    return MediaResolver(
        repo=repo,
        catalog=catalog,
        probe=probe,
        registration=AssetRegistrationResolver(repo),
        discovery=discovery,
        repair=MediaRepairService(repo, discovery),
        thumbnails=ThumbnailPipeline(repo, strategies),
        playback=PlaybackResolver(catalog=catalog, signer=signer),
    )


@asynccontextmanager
async def media_resolver_lifespan(**overrides) -> AsyncIterator[MediaResolver]:
    """Configure logging, build the resolver, and tear it down on exit."""
    setup_logging()
    resolver = create_resolver(**overrides)
    logger.info("✅ %s %s starting (%s)", settings.PROJECT_NAME, settings.VERSION, settings.ENV)
    try:
        yield resolver
    finally:
        try:
            await resolver.aclose()
        except Exception:
            logger.exception("Error during media resolver shutdown")
        logger.info("🛑 %s shut down", settings.PROJECT_NAME)


__all__ = ["MediaResolver", "create_resolver", "media_resolver_lifespan"]
