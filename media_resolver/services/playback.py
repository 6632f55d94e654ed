from __future__ import annotations

"""
Fallback Playback Resolver
==========================

Builds the ordered list of delivery URLs a player should try, and advances to
the next one when the client reports a failure.

Ordering is injected (`PLAYBACK_ORDER`, default PROCESSOR_STREAM, CDN,
ORIGIN_RELAY); each slot expands to zero or more candidates:

- PROCESSOR_STREAM: only when the asset is READY and a processor stream
  reference was verified within `VERIFIED_TTL_SECONDS`.
- CDN: stored CDN references, then CDN URLs derived from object-store keys.
- OBJECT_STORE: short-lived presigned GETs for stored `s3://` references
  (only when a signer is configured and the slot is in the order).
- ORIGIN_RELAY: stored relay references, then `ORIGIN_RELAY_BASE_URL/{id}`,
  which is always derivable.

`PlaybackSession` is the client-side walk over those candidates:
Trying(0) → Trying(1) → … → Exhausted, never retrying a failed index.
"""

import logging
from typing import Callable, List, Optional, Sequence

from media_resolver.core.config import settings
from media_resolver.core.exceptions import PlaybackExhausted
from media_resolver.schemas.enums import BackendType, ProcessingState
from media_resolver.schemas.media import PlaybackCandidate, VideoAsset, utcnow
from media_resolver.services.catalog import StorageLocationCatalog
from media_resolver.utils.aws import S3StorageError, parse_s3_uri

logger = logging.getLogger(__name__)

DEFAULT_PLAYBACK_ORDER = (BackendType.PROCESSOR_STREAM, BackendType.CDN, BackendType.ORIGIN_RELAY)

# s3:// URI → presigned https URL
Signer = Callable[[str], str]


def parse_playback_order(names: Sequence[str]) -> List[BackendType]:
    """Map configured names to backends, dropping unknowns and duplicates."""
    order: List[BackendType] = []
    for name in names:
        try:
            backend = BackendType(name.strip().upper())
        except ValueError:
            logger.warning("ignoring unknown playback backend %r", name)
            continue
        if backend not in order:
            order.append(backend)
    return order or list(DEFAULT_PLAYBACK_ORDER)


class PlaybackResolver:
    def __init__(
        self,
        *,
        order: Optional[Sequence[BackendType]] = None,
        catalog: Optional[StorageLocationCatalog] = None,
        origin_relay_base_url: Optional[str] = None,
        signer: Optional[Signer] = None,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        self.order = list(order) if order is not None else parse_playback_order(settings.playback_order_list)
        self.catalog = catalog or StorageLocationCatalog()
        self.origin_relay_base_url = (origin_relay_base_url or settings.ORIGIN_RELAY_BASE_URL).rstrip("/")
        self.signer = signer
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.VERIFIED_TTL_SECONDS

    # ── slots ───────────────────────────────────────────────
    def _processor(self, asset: VideoAsset) -> List[str]:
        if asset.processing_state != ProcessingState.READY:
            return []
        now = utcnow()
        return [
            r.uri
            for r in asset.references_for(BackendType.PROCESSOR_STREAM)
            if r.is_fresh(self.ttl_seconds, now=now)
        ]

    def _cdn(self, asset: VideoAsset) -> List[str]:
        uris = [r.uri for r in asset.references_for(BackendType.CDN)]
        for ref in asset.references_for(BackendType.OBJECT_STORE):
            try:
                _, key = parse_s3_uri(ref.uri)
            except S3StorageError:
                continue
            url = self.catalog.cdn_url(key)
            if url:
                uris.append(url)
        return uris

    def _object_store(self, asset: VideoAsset) -> List[str]:
        if self.signer is None:
            return []
        uris: List[str] = []
        for ref in asset.references_for(BackendType.OBJECT_STORE):
            try:
                uris.append(self.signer(ref.uri))
            except S3StorageError as e:
                logger.warning("could not sign %s: %s", ref.uri, e)
        return uris

    def _origin_relay(self, asset: VideoAsset) -> List[str]:
        uris = [r.uri for r in asset.references_for(BackendType.ORIGIN_RELAY) if not r.uri.startswith("data:")]
        uris.append(f"{self.origin_relay_base_url}/{asset.id}")
        return uris

    # ── public API ──────────────────────────────────────────
    def resolve_candidates(self, asset: VideoAsset) -> List[PlaybackCandidate]:
        """Ordered, de-duplicated delivery URLs; never empty while ORIGIN_RELAY is in the order."""
        slots = {
            BackendType.PROCESSOR_STREAM: self._processor,
            BackendType.CDN: self._cdn,
            BackendType.OBJECT_STORE: self._object_store,
            BackendType.ORIGIN_RELAY: self._origin_relay,
        }
        seen: set[str] = set()
        candidates: List[PlaybackCandidate] = []
        for backend in self.order:
            for uri in slots[backend](asset):
                if uri in seen:
                    continue
                seen.add(uri)
                candidates.append(PlaybackCandidate(backend_type=backend, uri=uri))
        logger.debug("playback candidates for %s: %s", asset.id, [c.backend_type.value for c in candidates])
        return candidates

    @staticmethod
    def advance(candidates: Sequence[PlaybackCandidate], failed_index: int) -> Optional[PlaybackCandidate]:
        """The candidate after `failed_index`, or None when the list is exhausted."""
        nxt = failed_index + 1
        if failed_index < 0 or nxt >= len(candidates):
            return None
        return candidates[nxt]

    def session(self, asset: VideoAsset) -> "PlaybackSession":
        return PlaybackSession(self.resolve_candidates(asset), asset_id=str(asset.id))


class PlaybackSession:
    """Client-side state: Trying(index) until every candidate has failed."""

    def __init__(self, candidates: Sequence[PlaybackCandidate], *, asset_id: Optional[str] = None) -> None:
        self.candidates = list(candidates)
        self.asset_id = asset_id
        self.index: Optional[int] = 0 if self.candidates else None
        self.failed: List[int] = []

    @property
    def exhausted(self) -> bool:
        return self.index is None

    @property
    def current(self) -> PlaybackCandidate:
        if self.index is None:
            raise self._exhausted_error()
        return self.candidates[self.index]

    def fail(self, index: Optional[int] = None) -> PlaybackCandidate:
        """
        Report that candidate `index` (default: the current one) failed.

        Returns the next candidate to try. A stale report for an index that is
        not current is ignored.

        Raises
        ------
        PlaybackExhausted
            No candidates remain; carries a single user-facing message.
        """
        if self.index is None:
            raise self._exhausted_error()
        failed_index = self.index if index is None else index
        if failed_index != self.index:
            return self.current
        self.failed.append(failed_index)
        nxt = PlaybackResolver.advance(self.candidates, failed_index)
        if nxt is None:
            self.index = None
            logger.warning("playback exhausted for %s after %d candidate(s)", self.asset_id, len(self.failed))
            raise self._exhausted_error()
        self.index = failed_index + 1
        return nxt

    def _exhausted_error(self) -> PlaybackExhausted:
        return PlaybackExhausted(
            asset_id=self.asset_id,
            tried=[self.candidates[i].uri for i in self.failed],
        )


__all__ = [
    "DEFAULT_PLAYBACK_ORDER",
    "parse_playback_order",
    "PlaybackResolver",
    "PlaybackSession",
]
