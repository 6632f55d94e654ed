from __future__ import annotations

"""
Probe Engine
============

Cheap existence check for one URI, always under an explicit timeout.

- `http(s)://` → HEAD (redirects followed); a 405/501 falls back to a 1-byte
  ranged GET whose body is never read.
- `s3://bucket/key` → `head_object` in a worker thread.
- `data:` → reachable by construction (inline placeholder thumbnails).

Failures are values (`Unreachable`), never exceptions; only cancellation
propagates. Nothing here downloads full content.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Optional, Union

import httpx
from botocore.exceptions import ConnectTimeoutError, ReadTimeoutError

from media_resolver.core.config import settings
from media_resolver.core.metrics import inc_probe, observe_probe_seconds
from media_resolver.schemas.enums import UnreachableReason
from media_resolver.utils.aws import S3AccessDenied, S3Client, S3StorageError

logger = logging.getLogger(__name__)

_CONTENT_RANGE_TOTAL = re.compile(r"/(\d+)\s*$")


@dataclass(frozen=True)
class Reachable:
    size_bytes: Optional[int] = None
    content_type: Optional[str] = None
    supports_partial_content: Optional[bool] = None

    reachable = True


@dataclass(frozen=True)
class Unreachable:
    reason: UnreachableReason
    detail: str = ""

    reachable = False


ProbeResult = Union[Reachable, Unreachable]


def _int_or_none(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def _status_to_unreachable(status: int) -> Unreachable:
    if status in (404, 410):
        return Unreachable(UnreachableReason.NOT_FOUND, f"HTTP {status}")
    if status in (401, 403):
        return Unreachable(UnreachableReason.FORBIDDEN, f"HTTP {status}")
    if status in (408, 504):
        return Unreachable(UnreachableReason.TIMEOUT, f"HTTP {status}")
    return Unreachable(UnreachableReason.ERROR, f"HTTP {status}")


class ProbeEngine:
    """
    Parameters
    ----------
    http_client : httpx.AsyncClient | None
        Shared client; one is created lazily (and closed by `aclose`) if omitted.
    s3 : S3Client | None
        Used for `s3://` URIs; created lazily with the probe timeout.
    timeout : float | None
        Default per-probe timeout (seconds). Defaults to `PROBE_TIMEOUT_SECONDS`.
    """

    def __init__(
        self,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        s3: Optional[S3Client] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else settings.PROBE_TIMEOUT_SECONDS
        self._http = http_client
        self._owns_http = http_client is None
        self._s3 = s3

    # ── resources ───────────────────────────────────────────
    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), follow_redirects=True)
        return self._http

    @property
    def s3(self) -> S3Client:
        if self._s3 is None:
            self._s3 = S3Client(connect_timeout=self.timeout, read_timeout=self.timeout)
        return self._s3

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "ProbeEngine":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # ── public API ──────────────────────────────────────────
    async def probe(self, uri: str, *, timeout: Optional[float] = None) -> ProbeResult:
        """Probe a single URI; never raises except on cancellation."""
        budget = timeout if timeout is not None else self.timeout
        scheme = uri.split(":", 1)[0].lower() if ":" in uri else ""
        started = time.perf_counter()

        try:
            if scheme in ("http", "https"):
                result = await asyncio.wait_for(self._probe_http(uri, budget), timeout=budget)
            elif scheme == "s3":
                result = await asyncio.wait_for(self._probe_s3(uri), timeout=budget)
            elif scheme == "data":
                result = self._probe_data(uri)
            else:
                result = Unreachable(UnreachableReason.ERROR, f"unsupported scheme: {scheme or '-'}")
        except asyncio.TimeoutError:
            result = Unreachable(UnreachableReason.TIMEOUT, f"no answer within {budget:g}s")

        elapsed = time.perf_counter() - started
        outcome = "reachable" if result.reachable else result.reason.value.lower()
        inc_probe(scheme or "unknown", outcome)
        observe_probe_seconds(scheme or "unknown", elapsed)
        logger.debug("probe %s → %s (%.0f ms)", uri, outcome, elapsed * 1000)
        return result

    # ── backends ────────────────────────────────────────────
    async def _probe_http(self, uri: str, budget: float) -> ProbeResult:
        try:
            resp = await self.http.head(uri, timeout=budget, follow_redirects=True)
            if resp.status_code in (405, 501):
                return await self._probe_http_range(uri, budget)
            if 200 <= resp.status_code < 300:
                return Reachable(
                    size_bytes=_int_or_none(resp.headers.get("content-length")),
                    content_type=resp.headers.get("content-type"),
                    supports_partial_content=resp.headers.get("accept-ranges", "").lower() == "bytes" or None,
                )
            return _status_to_unreachable(resp.status_code)
        except httpx.TimeoutException as e:
            return Unreachable(UnreachableReason.TIMEOUT, str(e) or type(e).__name__)
        except httpx.HTTPError as e:
            return Unreachable(UnreachableReason.ERROR, str(e) or type(e).__name__)
        except httpx.InvalidURL as e:
            return Unreachable(UnreachableReason.ERROR, f"invalid URL: {e}")

    async def _probe_http_range(self, uri: str, budget: float) -> ProbeResult:
        # runs inside _probe_http's handlers; the body is never read and leaving
        # the stream context closes the connection
        async with self.http.stream(
            "GET", uri, headers={"Range": "bytes=0-0"}, timeout=budget, follow_redirects=True
        ) as resp:
            if resp.status_code == 206:
                match = _CONTENT_RANGE_TOTAL.search(resp.headers.get("content-range", ""))
                return Reachable(
                    size_bytes=int(match.group(1)) if match else None,
                    content_type=resp.headers.get("content-type"),
                    supports_partial_content=True,
                )
            if resp.status_code == 200:
                return Reachable(
                    size_bytes=_int_or_none(resp.headers.get("content-length")),
                    content_type=resp.headers.get("content-type"),
                    supports_partial_content=False,
                )
            return _status_to_unreachable(resp.status_code)

    async def _probe_s3(self, uri: str) -> ProbeResult:
        try:
            meta = await asyncio.to_thread(self.s3.head_uri, uri)
        except S3AccessDenied as e:
            return Unreachable(UnreachableReason.FORBIDDEN, str(e))
        except S3StorageError as e:
            if isinstance(e.__cause__, (ConnectTimeoutError, ReadTimeoutError)):
                return Unreachable(UnreachableReason.TIMEOUT, str(e))
            return Unreachable(UnreachableReason.ERROR, str(e))
        if meta is None:
            return Unreachable(UnreachableReason.NOT_FOUND, "NoSuchKey")
        return Reachable(
            size_bytes=meta.get("ContentLength"),
            content_type=meta.get("ContentType"),
            supports_partial_content=(meta.get("AcceptRanges") or "").lower() == "bytes" or None,
        )

    @staticmethod
    def _probe_data(uri: str) -> ProbeResult:
        header, sep, _ = uri[len("data:"):].partition(",")
        if not sep:
            return Unreachable(UnreachableReason.ERROR, "malformed data URI")
        content_type = header.split(";", 1)[0] or "text/plain"
        return Reachable(content_type=content_type, supports_partial_content=False)


__all__ = ["Reachable", "Unreachable", "ProbeResult", "ProbeEngine"]
