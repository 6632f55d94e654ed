# tests/test_discovery/test_probe.py
import asyncio

import httpx
import pytest

from media_resolver.schemas.enums import UnreachableReason
from media_resolver.services.probe import ProbeEngine, Reachable, Unreachable
from media_resolver.utils.aws import S3Client
from tests.fixtures.assets import BUCKET
from tests.fixtures.fakes import FakeS3Client


def _engine(handler, *, timeout: float = 1.0) -> ProbeEngine:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProbeEngine(http_client=client, timeout=timeout)


# ─────────────────────────────────────────────────────────────────────────────
# HTTP(S)
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_head_200_is_reachable_with_metadata():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.method)
        return httpx.Response(
            200,
            headers={"content-length": "2048", "content-type": "video/mp4", "accept-ranges": "bytes"},
        )

    result = await _engine(handler).probe("https://cdn.example.com/videos/a.mp4")

    assert isinstance(result, Reachable)
    assert result.reachable is True
    assert result.size_bytes == 2048
    assert result.content_type == "video/mp4"
    assert result.supports_partial_content is True
    assert seen == ["HEAD"]


@pytest.mark.anyio
@pytest.mark.parametrize(
    "status,reason",
    [
        (404, UnreachableReason.NOT_FOUND),
        (410, UnreachableReason.NOT_FOUND),
        (403, UnreachableReason.FORBIDDEN),
        (504, UnreachableReason.TIMEOUT),
        (500, UnreachableReason.ERROR),
    ],
)
async def test_http_status_maps_to_reason(status, reason):
    result = await _engine(lambda request: httpx.Response(status)).probe("https://cdn.example.com/x.mp4")

    assert isinstance(result, Unreachable)
    assert result.reachable is False
    assert result.reason == reason


@pytest.mark.anyio
async def test_head_not_allowed_falls_back_to_single_byte_range():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.headers.get("range")))
        if request.method == "HEAD":
            return httpx.Response(405)
        return httpx.Response(
            206,
            headers={"content-range": "bytes 0-0/987654", "content-type": "video/mp4"},
            content=b"\x00",
        )

    result = await _engine(handler).probe("https://origin.example.com/a.mp4")

    assert isinstance(result, Reachable)
    assert result.size_bytes == 987654
    assert result.supports_partial_content is True
    assert seen == [("HEAD", None), ("GET", "bytes=0-0")]


@pytest.mark.anyio
async def test_slow_server_times_out_within_budget():
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200)

    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await _engine(handler).probe("https://slow.example.com/a.mp4", timeout=0.05)

    assert isinstance(result, Unreachable)
    assert result.reason == UnreachableReason.TIMEOUT
    assert loop.time() - started < 1.0


@pytest.mark.anyio
async def test_transport_errors_are_values_not_exceptions():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _engine(handler).probe("https://down.example.com/a.mp4")

    assert isinstance(result, Unreachable)
    assert result.reason == UnreachableReason.ERROR


@pytest.mark.anyio
async def test_connect_timeout_is_reported_as_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    result = await _engine(handler).probe("https://down.example.com/a.mp4")

    assert result.reason == UnreachableReason.TIMEOUT


@pytest.mark.anyio
async def test_malformed_http_uri_is_an_error_value():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(200)

    result = await _engine(handler).probe("http://[::1/video.mp4")

    assert isinstance(result, Unreachable)
    assert result.reason == UnreachableReason.ERROR
    assert seen == []


# ─────────────────────────────────────────────────────────────────────────────
# s3:// and data:
# ─────────────────────────────────────────────────────────────────────────────

def _s3_engine(fake: FakeS3Client) -> ProbeEngine:
    return ProbeEngine(s3=S3Client(BUCKET, client=fake), timeout=1.0)


@pytest.mark.anyio
async def test_s3_object_found():
    fake = FakeS3Client({(BUCKET, "videos/a.mp4"): {"ContentLength": 42, "ContentType": "video/mp4"}})

    result = await _s3_engine(fake).probe(f"s3://{BUCKET}/videos/a.mp4")

    assert isinstance(result, Reachable)
    assert result.size_bytes == 42
    assert fake.head_calls == [(BUCKET, "videos/a.mp4")]


@pytest.mark.anyio
async def test_s3_missing_and_forbidden_are_distinguished():
    fake = FakeS3Client(forbidden=[(BUCKET, "private/a.mp4")])
    engine = _s3_engine(fake)

    missing = await engine.probe(f"s3://{BUCKET}/videos/nope.mp4")
    forbidden = await engine.probe(f"s3://{BUCKET}/private/a.mp4")

    assert missing.reason == UnreachableReason.NOT_FOUND
    assert forbidden.reason == UnreachableReason.FORBIDDEN


@pytest.mark.anyio
async def test_malformed_s3_uri_is_an_error_value():
    result = await _s3_engine(FakeS3Client()).probe("s3://bucket-only")

    assert result.reason == UnreachableReason.ERROR


@pytest.mark.anyio
async def test_data_uri_is_reachable_without_io():
    engine = ProbeEngine(timeout=1.0)

    result = await engine.probe("data:image/svg+xml;base64,PHN2Zy8+")
    await engine.aclose()

    assert isinstance(result, Reachable)
    assert result.content_type == "image/svg+xml"


@pytest.mark.anyio
async def test_unsupported_scheme():
    result = await ProbeEngine(timeout=1.0).probe("ftp://files.example.com/a.mp4")

    assert result.reason == UnreachableReason.ERROR
    assert "unsupported scheme" in result.detail
