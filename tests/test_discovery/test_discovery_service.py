# tests/test_discovery/test_discovery_service.py
import asyncio
from uuid import uuid4

import pytest

from media_resolver.core.exceptions import DiscoveryExhausted
from media_resolver.schemas.enums import BackendType, MediaKind
from media_resolver.services.discovery import MediaDiscoveryService
from tests.fixtures.assets import BUCKET, CDN, make_catalog, make_draft
from tests.fixtures.fakes import FakeProbe, reachable

STORED = f"s3://{BUCKET}/videos/moot-court-final.mp4"
UPLOAD_CDN = f"{CDN}/videos/moot-court-final.mp4"


def _service(repo, probe, **kwargs) -> MediaDiscoveryService:
    kwargs.setdefault("video_timeout", 0.5)
    kwargs.setdefault("thumbnail_timeout", 0.5)
    return MediaDiscoveryService(repo, catalog=make_catalog(), probe=probe, **kwargs)


@pytest.mark.anyio
async def test_returns_first_reachable_candidate_and_stops(repo):
    asset = await repo.insert("ext-1", make_draft())
    probe = FakeProbe({UPLOAD_CDN: reachable(size=4096)})

    result = await _service(repo, probe).discover(asset.id, MediaKind.VIDEO)

    assert result.found is True
    assert result.uri == UPLOAD_CDN
    assert result.backend_type == BackendType.CDN
    assert result.size_bytes == 4096
    assert probe.uris == [STORED, UPLOAD_CDN]
    assert [a.reachable for a in result.attempts] == [False, True]
    assert result.attempts[0].reason == "NOT_FOUND"


@pytest.mark.anyio
async def test_discover_does_not_modify_the_asset(repo):
    asset = await repo.insert("ext-1", make_draft())
    probe = FakeProbe({UPLOAD_CDN: reachable()})

    await _service(repo, probe).discover(asset.id, MediaKind.VIDEO)

    assert (await repo.get(asset.id)).storage_references == asset.storage_references


@pytest.mark.anyio
async def test_every_candidate_unreachable(repo):
    asset = await repo.insert("ext-1", make_draft())
    service = _service(repo, FakeProbe())

    result = await service.discover(asset.id, MediaKind.VIDEO)

    assert result.found is False
    assert result.budget_exceeded is False
    assert len(result.attempts) == len(service.catalog.candidates_for(asset, MediaKind.VIDEO))


@pytest.mark.anyio
async def test_hanging_backends_are_bounded_by_the_budget(repo):
    asset = await repo.insert("ext-1", make_draft())
    probe = FakeProbe(hang=True)
    service = _service(repo, probe, video_timeout=0.02, budget_seconds=0.1)

    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await service.discover(asset.id, MediaKind.VIDEO)

    assert result.found is False
    assert result.budget_exceeded is True
    assert loop.time() - started < 1.0
    assert all(timeout <= 0.02 for _, timeout in probe.calls)
    assert len(probe.calls) < len(service.catalog.candidates_for(asset, MediaKind.VIDEO))


@pytest.mark.anyio
async def test_thumbnail_probes_use_the_thumbnail_timeout(repo):
    asset = await repo.insert("ext-1", make_draft())
    probe = FakeProbe()

    await _service(repo, probe, thumbnail_timeout=0.25).discover(asset.id, MediaKind.THUMBNAIL)

    assert {timeout for _, timeout in probe.calls} == {0.25}


@pytest.mark.anyio
async def test_unknown_asset_falls_back_to_id_templates(repo):
    asset_id = uuid4()
    target = f"{CDN}/videos/{asset_id}.mp4"

    result = await _service(repo, FakeProbe({target: reachable()})).discover(asset_id, MediaKind.VIDEO)

    assert result.found
    assert result.uri == target


@pytest.mark.anyio
async def test_excluded_uris_are_not_probed(repo):
    asset = await repo.insert("ext-1", make_draft())
    probe = FakeProbe({UPLOAD_CDN: reachable()})

    await _service(repo, probe).discover_for(asset, MediaKind.VIDEO, exclude={STORED})

    assert STORED not in probe.uris


@pytest.mark.anyio
async def test_discover_or_raise(repo):
    asset = await repo.insert("ext-1", make_draft())

    with pytest.raises(DiscoveryExhausted) as exc:
        await _service(repo, FakeProbe()).discover_or_raise(asset.id, MediaKind.VIDEO)

    assert exc.value.retryable is True
    assert exc.value.asset_id == str(asset.id)
    assert exc.value.details[0]["uri"] == STORED
