from __future__ import annotations

"""
Storage Location Catalog
========================

Pure, deterministic mapping from whatever we know about an asset (id,
filename, upload key, stored references, processor playback id) to an ordered
list of places its bytes could live. No I/O happens here; the Probe Engine
decides which candidates are real.

Ordering
--------
1. Stored references (what the record already claims).
2. Keys derived from the upload key, then from the filename.
3. Keys derived from the asset id via the known bucket layouts.
4. The external processor's URLs for a known playback id.

Every object-store key is offered through the CDN first, then directly from
the bucket. Candidates are de-duplicated by (backend, uri) keeping the first,
then stably sorted by confidence.
"""

import logging
import posixpath
from typing import Iterable, List, Optional, Sequence
from urllib.parse import quote

from media_resolver.core.config import settings
from media_resolver.core.storage import (
    S3_PREFIX_THUMBNAILS,
    S3_PREFIX_VIDEOS,
    THUMBNAIL_KEY_TEMPLATES,
    VIDEO_KEY_TEMPLATES,
    secondary_thumbnail_key,
)
from media_resolver.schemas.enums import BackendType, MediaKind
from media_resolver.schemas.media import StorageCandidate, StorageReference, ThumbnailReference, VideoAsset
from media_resolver.utils.aws import S3StorageError, s3_uri

logger = logging.getLogger(__name__)

# Confidence bands
_STORED_VERIFIED = 0.95
_STORED = 0.9
_UPLOAD_KEY = 0.85
_FILENAME = 0.8
_SECONDARY_OUTPUT = 0.7
_TEMPLATE_START = 0.6
_TEMPLATE_STEP = 0.05
_TEMPLATE_FLOOR = 0.2
_PROCESSOR = 0.1
_DIRECT_PENALTY = 0.05


def _stem(key: str) -> str:
    base = posixpath.basename(key)
    stem, _ = posixpath.splitext(base)
    return stem or base


class StorageLocationCatalog:
    """Builds candidate locations from naming conventions."""

    def __init__(
        self,
        *,
        bucket: Optional[str] = None,
        cdn_base_url: Optional[str] = None,
        processor_stream_base_url: Optional[str] = None,
        processor_image_base_url: Optional[str] = None,
        processor_thumbnail_time: Optional[int] = None,
        secondary_output_prefix: Optional[str] = None,
    ) -> None:
        self.bucket = bucket if bucket is not None else settings.AWS_BUCKET_NAME
        self.cdn_base_url = (cdn_base_url if cdn_base_url is not None else settings.cdn_base_url).rstrip("/")
        self.stream_base = processor_stream_base_url or settings.MUX_STREAM_BASE_URL
        self.image_base = processor_image_base_url or settings.MUX_IMAGE_BASE_URL
        self.thumbnail_time = (
            processor_thumbnail_time if processor_thumbnail_time is not None else settings.MUX_THUMBNAIL_TIME_SECONDS
        )
        self.secondary_output_prefix = (
            secondary_output_prefix if secondary_output_prefix is not None else settings.MEDIACONVERT_OUTPUT_PREFIX
        )

    # ── URL builders ─────────────────────────────────────────
    def cdn_url(self, key: str) -> Optional[str]:
        if not self.cdn_base_url:
            return None
        return f"{self.cdn_base_url}/{quote(key.lstrip('/'), safe='/')}"

    def object_uri(self, key: str) -> Optional[str]:
        if not self.bucket:
            return None
        try:
            return s3_uri(self.bucket, key)
        except S3StorageError:
            logger.debug("skipping unusable key %r", key)
            return None

    def processor_stream_url(self, playback_id: str) -> str:
        return f"{self.stream_base}/{playback_id}.m3u8"

    def processor_thumbnail_url(self, playback_id: str) -> str:
        return f"{self.image_base}/{playback_id}/thumbnail.jpg?time={self.thumbnail_time}"

    def secondary_thumbnail_key(self, asset_id: str, source_key: str) -> str:
        """Where a frame-capture job for `source_key` writes its single JPEG."""
        return secondary_thumbnail_key(self.secondary_output_prefix, asset_id, source_key)

    # ── Candidate generation ─────────────────────────────────
    def _keyed(self, key: str, confidence: float, source: str) -> Iterable[StorageCandidate]:
        cdn = self.cdn_url(key)
        if cdn:
            yield StorageCandidate(backend_type=BackendType.CDN, uri=cdn, confidence=confidence, source=source)
        direct = self.object_uri(key)
        if direct:
            yield StorageCandidate(
                backend_type=BackendType.OBJECT_STORE,
                uri=direct,
                confidence=max(confidence - _DIRECT_PENALTY, 0.0),
                source=source,
            )

    def _templated(self, templates: Sequence[str], asset_id: str) -> Iterable[StorageCandidate]:
        confidence = _TEMPLATE_START
        for template in templates:
            yield from self._keyed(template.format(asset_id=asset_id), confidence, "naming_convention")
            confidence = max(confidence - _TEMPLATE_STEP, _TEMPLATE_FLOOR)

    def _video(
        self,
        asset_id: str,
        filename: Optional[str],
        upload_key: Optional[str],
        references: Sequence[StorageReference],
        playback_id: Optional[str],
    ) -> Iterable[StorageCandidate]:
        for ref in references:
            # the relay serves whatever discovery finds; probing it would be circular
            if ref.backend_type == BackendType.ORIGIN_RELAY:
                continue
            yield StorageCandidate(
                backend_type=ref.backend_type,
                uri=ref.uri,
                confidence=_STORED_VERIFIED if ref.verified_at else _STORED,
                source="stored_reference",
            )
        if upload_key:
            yield from self._keyed(upload_key, _UPLOAD_KEY, "upload_key")
        if filename:
            yield from self._keyed(f"{S3_PREFIX_VIDEOS}{filename}", _FILENAME, "filename")
            yield from self._keyed(filename, _FILENAME - _DIRECT_PENALTY, "filename")
        yield from self._templated(VIDEO_KEY_TEMPLATES, asset_id)
        if playback_id:
            yield StorageCandidate(
                backend_type=BackendType.PROCESSOR_STREAM,
                uri=self.processor_stream_url(playback_id),
                confidence=_PROCESSOR,
                source="processor_playback_id",
            )

    def _thumbnail(
        self,
        asset_id: str,
        filename: Optional[str],
        upload_key: Optional[str],
        thumbnail: Optional[ThumbnailReference],
        playback_id: Optional[str],
    ) -> Iterable[StorageCandidate]:
        if thumbnail and not thumbnail.uri.startswith("data:"):
            yield StorageCandidate(
                backend_type=thumbnail.backend_type,
                uri=thumbnail.uri,
                confidence=_STORED_VERIFIED if thumbnail.verified_at else _STORED,
                source="stored_reference",
            )
        if upload_key:
            yield from self._keyed(f"{S3_PREFIX_THUMBNAILS}{_stem(upload_key)}.jpg", _UPLOAD_KEY, "upload_key")
        if filename:
            yield from self._keyed(f"{S3_PREFIX_THUMBNAILS}{_stem(filename)}.jpg", _FILENAME, "filename")
        source_key = upload_key or VIDEO_KEY_TEMPLATES[0].format(asset_id=asset_id)
        yield from self._keyed(
            self.secondary_thumbnail_key(asset_id, source_key), _SECONDARY_OUTPUT, "secondary_output"
        )
        yield from self._templated(THUMBNAIL_KEY_TEMPLATES, asset_id)
        if playback_id:
            yield StorageCandidate(
                backend_type=BackendType.PROCESSOR_STREAM,
                uri=self.processor_thumbnail_url(playback_id),
                confidence=_PROCESSOR,
                source="processor_playback_id",
            )

    def candidates(
        self,
        kind: MediaKind,
        *,
        asset_id: str,
        filename: Optional[str] = None,
        upload_key: Optional[str] = None,
        references: Sequence[StorageReference] = (),
        thumbnail: Optional[ThumbnailReference] = None,
        playback_id: Optional[str] = None,
    ) -> List[StorageCandidate]:
        """Ordered, de-duplicated candidates for one media kind."""
        if kind == MediaKind.VIDEO:
            raw = self._video(asset_id, filename, upload_key, references, playback_id)
        else:
            raw = self._thumbnail(asset_id, filename, upload_key, thumbnail, playback_id)

        seen: set[tuple[BackendType, str]] = set()
        unique: List[StorageCandidate] = []
        for c in raw:
            key = (c.backend_type, c.uri)
            if key in seen:
                continue
            seen.add(key)
            unique.append(c)
        # sorted() is stable, so equal confidences keep rule order
        return sorted(unique, key=lambda c: -c.confidence)

    def candidates_for(self, asset: VideoAsset, kind: MediaKind) -> List[StorageCandidate]:
        return self.candidates(
            kind,
            asset_id=str(asset.id),
            filename=asset.filename,
            upload_key=asset.upload_key,
            references=asset.storage_references,
            thumbnail=asset.thumbnail_reference,
            playback_id=asset.processor_playback_id,
        )


__all__ = ["StorageLocationCatalog"]
