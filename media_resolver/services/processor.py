from __future__ import annotations

"""
External media processor client (Mux-compatible REST API).

Only what the resolvers need: asset readiness + first playback id, and the
derived stream / thumbnail URLs.

    GET {MUX_API_BASE_URL}/video/v1/assets/{asset_id}   (HTTP basic auth)
    → {"data": {"id", "status": "preparing|ready|errored", "playback_ids": [{"id"}], "duration"}}
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from media_resolver.core.config import settings
from media_resolver.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

SERVICE = "processor"


@dataclass(frozen=True)
class ProcessorAsset:
    asset_id: str
    status: str
    playback_id: Optional[str] = None
    duration_seconds: Optional[float] = None

    @property
    def ready(self) -> bool:
        return self.status == "ready" and bool(self.playback_id)


class MediaProcessorClient:
    def __init__(
        self,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        token_id: Optional[str] = None,
        token_secret: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or settings.MUX_API_BASE_URL).rstrip("/")
        self.stream_base = settings.MUX_STREAM_BASE_URL
        self.image_base = settings.MUX_IMAGE_BASE_URL
        self.thumbnail_time = settings.MUX_THUMBNAIL_TIME_SECONDS
        self.timeout = timeout if timeout is not None else settings.PROCESSOR_TIMEOUT_SECONDS
        self._token_id = token_id or settings.MUX_TOKEN_ID
        secret = token_secret or (
            settings.MUX_TOKEN_SECRET.get_secret_value() if settings.MUX_TOKEN_SECRET else None
        )
        self._token_secret = secret
        self._http = http_client

    @property
    def configured(self) -> bool:
        return bool(self._token_id and self._token_secret) or self._http is not None

    def stream_url(self, playback_id: str) -> str:
        return f"{self.stream_base}/{playback_id}.m3u8"

    def thumbnail_url(self, playback_id: str) -> str:
        return f"{self.image_base}/{playback_id}/thumbnail.jpg?time={self.thumbnail_time}"

    async def _get(self, path: str) -> httpx.Response:
        auth = (self._token_id, self._token_secret) if self._token_id and self._token_secret else None
        url = f"{self.base_url}{path}"
        if self._http is not None:
            return await self._http.get(url, auth=auth, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
            return await client.get(url, auth=auth)

    async def get_asset(self, asset_id: str) -> ProcessorAsset:
        """
        Fetch processor-side status for `asset_id`.

        Raises
        ------
        ExternalServiceError
            On transport failures, timeouts, non-2xx answers, or bad payloads.
        """
        try:
            resp = await self._get(f"/video/v1/assets/{asset_id}")
        except httpx.TimeoutException as e:
            raise ExternalServiceError("Processor timed out", service=SERVICE, asset_id=asset_id) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Processor unreachable: {e}", service=SERVICE, asset_id=asset_id) from e

        if resp.status_code == 404:
            raise ExternalServiceError("Processor asset not found", service=SERVICE, asset_id=asset_id)
        if resp.status_code >= 400:
            raise ExternalServiceError(
                f"Processor answered HTTP {resp.status_code}",
                service=SERVICE,
                asset_id=asset_id,
                details={"status": resp.status_code},
            )

        try:
            data = resp.json().get("data") or {}
        except ValueError as e:
            raise ExternalServiceError("Processor returned invalid JSON", service=SERVICE, asset_id=asset_id) from e

        playback_ids = data.get("playback_ids") or []
        playback_id = playback_ids[0].get("id") if playback_ids and isinstance(playback_ids[0], dict) else None
        asset = ProcessorAsset(
            asset_id=str(data.get("id") or asset_id),
            status=str(data.get("status") or "unknown"),
            playback_id=playback_id,
            duration_seconds=data.get("duration"),
        )
        logger.debug("processor asset %s status=%s playback=%s", asset_id, asset.status, asset.playback_id)
        return asset


__all__ = ["ProcessorAsset", "MediaProcessorClient"]
