from __future__ import annotations

"""
Secondary transcoder client (AWS MediaConvert frame capture).

Submits a one-frame FRAME_CAPTURE job for an uploaded video and polls it to
completion within a bounded timeout. The output lands at a deterministic key
(see `core.storage.secondary_thumbnail_key`) so discovery can find it later
even if this process dies mid-poll.

boto3 is synchronous; every call runs in a worker thread.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from media_resolver.core.config import settings
from media_resolver.core.exceptions import ExternalServiceError
from media_resolver.core.storage import SECONDARY_THUMBNAIL_NAME_MODIFIER, secondary_thumbnail_key
from media_resolver.utils.aws import boto_client_kwargs

logger = logging.getLogger(__name__)

SERVICE = "transcoder"
_TERMINAL_FAILURES = {"ERROR", "CANCELED"}

# Capture from 10s in to skip black lead-in frames.
CAPTURE_START_TIMECODE = "00:00:10:00"
CAPTURE_END_TIMECODE = "00:00:11:00"


class SecondaryTranscoderClient:
    """
    Parameters
    ----------
    client : Any
        Pre-built MediaConvert client (tests pass a stub).
    timeout : float | None
        Overall budget for submit + poll. Defaults to `SECONDARY_THUMBNAIL_TIMEOUT_SECONDS`.
    poll_interval : float | None
        Delay between `get_job` calls. Defaults to `SECONDARY_POLL_INTERVAL_SECONDS`.
    """

    def __init__(
        self,
        *,
        client: Any = None,
        role_arn: Optional[str] = None,
        bucket: Optional[str] = None,
        output_prefix: Optional[str] = None,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> None:
        self._client = client
        self.role_arn = role_arn or settings.MEDIACONVERT_ROLE_ARN
        self.bucket = bucket or settings.AWS_BUCKET_NAME
        self.output_prefix = output_prefix if output_prefix is not None else settings.MEDIACONVERT_OUTPUT_PREFIX
        self.timeout = timeout if timeout is not None else settings.SECONDARY_THUMBNAIL_TIMEOUT_SECONDS
        self.poll_interval = poll_interval if poll_interval is not None else settings.SECONDARY_POLL_INTERVAL_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.role_arn and self.bucket and (self._client is not None or settings.MEDIACONVERT_ENDPOINT))

    @property
    def client(self) -> Any:
        if self._client is None:
            kwargs = boto_client_kwargs(connect_timeout=5, read_timeout=15)
            if settings.MEDIACONVERT_ENDPOINT:
                kwargs["endpoint_url"] = settings.MEDIACONVERT_ENDPOINT
            self._client = boto3.client("mediaconvert", **kwargs)
        return self._client

    def output_key(self, asset_id: str, source_key: str) -> str:
        return secondary_thumbnail_key(self.output_prefix, asset_id, source_key)

    def build_job(self, asset_id: str, source_key: str, *, title: Optional[str] = None) -> Dict[str, Any]:
        """`create_job` keyword arguments for a single-frame capture."""
        # MediaConvert appends NameModifier to the input basename
        name_modifier = SECONDARY_THUMBNAIL_NAME_MODIFIER.format(asset_id=asset_id)
        return {
            "Role": self.role_arn,
            "Settings": {
                "Inputs": [
                    {
                        "FileInput": f"s3://{self.bucket}/{source_key.lstrip('/')}",
                        "VideoSelector": {"ColorSpace": "FOLLOW"},
                        "TimecodeSource": "ZEROBASED",
                        "InputClippings": [
                            {"StartTimecode": CAPTURE_START_TIMECODE, "EndTimecode": CAPTURE_END_TIMECODE}
                        ],
                    }
                ],
                "OutputGroups": [
                    {
                        "Name": "Thumbnail Output",
                        "OutputGroupSettings": {
                            "Type": "FILE_GROUP_SETTINGS",
                            "FileGroupSettings": {"Destination": f"s3://{self.bucket}/{self.output_prefix}"},
                        },
                        "Outputs": [
                            {
                                "NameModifier": name_modifier,
                                "ContainerSettings": {"Container": "RAW"},
                                "VideoDescription": {
                                    "CodecSettings": {
                                        "Codec": "FRAME_CAPTURE",
                                        "FrameCaptureSettings": {
                                            "FramerateNumerator": 1,
                                            "FramerateDenominator": 1,
                                            "MaxCaptures": 1,
                                            "Quality": 90,
                                        },
                                    },
                                    "Width": 1280,
                                    "Height": 720,
                                    "ScalingBehavior": "DEFAULT",
                                },
                                "Extension": "jpg",
                            }
                        ],
                    }
                ],
            },
            "UserMetadata": {
                "video-id": asset_id,
                "video-title": (title or "unknown")[:256],
                "input-s3-key": source_key,
                "purpose": "thumbnail-extraction",
            },
        }

    async def submit(self, asset_id: str, source_key: str, *, title: Optional[str] = None) -> str:
        job = self.build_job(asset_id, source_key, title=title)
        try:
            resp = await asyncio.to_thread(self.client.create_job, **job)
        except (ClientError, BotoCoreError) as e:
            raise ExternalServiceError(f"MediaConvert create_job failed: {e}", service=SERVICE, asset_id=asset_id) from e
        job_id = (resp.get("Job") or {}).get("Id")
        if not job_id:
            raise ExternalServiceError("MediaConvert returned no job id", service=SERVICE, asset_id=asset_id)
        logger.info("submitted frame capture job %s for %s", job_id, asset_id)
        return job_id

    async def wait(self, job_id: str, *, asset_id: Optional[str] = None) -> None:
        """Poll until COMPLETE; raise on ERROR/CANCELED. Unbounded; callers wrap it."""
        while True:
            try:
                resp = await asyncio.to_thread(self.client.get_job, Id=job_id)
            except (ClientError, BotoCoreError) as e:
                raise ExternalServiceError(f"MediaConvert get_job failed: {e}", service=SERVICE, asset_id=asset_id) from e
            job = resp.get("Job") or {}
            status = job.get("Status")
            if status == "COMPLETE":
                return
            if status in _TERMINAL_FAILURES:
                raise ExternalServiceError(
                    f"MediaConvert job {job_id} ended {status}",
                    service=SERVICE,
                    asset_id=asset_id,
                    details={"job_id": job_id, "error": job.get("ErrorMessage")},
                )
            await asyncio.sleep(self.poll_interval)

    async def capture_frame(self, asset_id: str, source_key: str, *, title: Optional[str] = None) -> str:
        """Submit + poll within `timeout`; returns the output object key."""

        async def _run() -> str:
            job_id = await self.submit(asset_id, source_key, title=title)
            await self.wait(job_id, asset_id=asset_id)
            return self.output_key(asset_id, source_key)

        try:
            return await asyncio.wait_for(_run(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ExternalServiceError(
                f"Frame capture did not finish within {self.timeout:g}s",
                service=SERVICE,
                asset_id=asset_id,
            ) from e


__all__ = ["SecondaryTranscoderClient"]
