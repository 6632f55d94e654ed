# tests/test_playback/test_playback_resolver.py
from datetime import timedelta

import pytest

from media_resolver.core.exceptions import PlaybackExhausted
from media_resolver.schemas.enums import BackendType, ProcessingState
from media_resolver.schemas.media import PlaybackCandidate, StorageReference, utcnow
from media_resolver.services.playback import (
    DEFAULT_PLAYBACK_ORDER,
    PlaybackResolver,
    PlaybackSession,
    parse_playback_order,
)
from tests.fixtures.assets import BUCKET, CDN, RELAY, make_catalog, make_draft

STREAM = "https://stream.mux.com/pb1.m3u8"
STORED = f"s3://{BUCKET}/videos/moot-court-final.mp4"


def _resolver(**kwargs) -> PlaybackResolver:
    kwargs.setdefault("order", DEFAULT_PLAYBACK_ORDER)
    return PlaybackResolver(catalog=make_catalog(), origin_relay_base_url=RELAY, **kwargs)


async def _ready_asset(repo, *, verified: bool = True, verified_ago: timedelta = timedelta(0)):
    asset = await repo.insert("ext-1", make_draft(initial_state=ProcessingState.READY))
    return await repo.add_storage_reference(
        asset.id,
        StorageReference(
            backend_type=BackendType.PROCESSOR_STREAM,
            uri=STREAM,
            verified_at=utcnow() - verified_ago if verified else None,
        ),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Candidate ordering
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_default_order_processor_then_cdn_then_relay(repo):
    asset = await _ready_asset(repo)

    candidates = _resolver().resolve_candidates(asset)

    assert [c.backend_type for c in candidates] == [
        BackendType.PROCESSOR_STREAM,
        BackendType.CDN,
        BackendType.ORIGIN_RELAY,
    ]
    assert [c.uri for c in candidates] == [
        STREAM,
        f"{CDN}/videos/moot-court-final.mp4",
        f"{RELAY}/{asset.id}",
    ]


@pytest.mark.anyio
async def test_processor_is_skipped_until_ready(repo):
    asset = await repo.insert("ext-1", make_draft())
    asset = await repo.add_storage_reference(
        asset.id, StorageReference(backend_type=BackendType.PROCESSOR_STREAM, uri=STREAM, verified_at=utcnow())
    )

    candidates = _resolver().resolve_candidates(asset)

    assert asset.processing_state == ProcessingState.REGISTERED
    assert BackendType.PROCESSOR_STREAM not in {c.backend_type for c in candidates}


@pytest.mark.anyio
async def test_processor_is_skipped_when_never_verified(repo):
    asset = await _ready_asset(repo, verified=False)

    candidates = _resolver().resolve_candidates(asset)

    assert candidates[0].backend_type == BackendType.CDN


@pytest.mark.anyio
async def test_processor_is_skipped_when_verification_is_stale(repo):
    asset = await _ready_asset(repo, verified_ago=timedelta(days=30))

    candidates = _resolver(ttl_seconds=900).resolve_candidates(asset)

    assert BackendType.PROCESSOR_STREAM not in {c.backend_type for c in candidates}
    assert candidates[0].backend_type == BackendType.CDN


@pytest.mark.anyio
async def test_processor_is_kept_within_verification_ttl(repo):
    asset = await _ready_asset(repo, verified_ago=timedelta(minutes=5))

    candidates = _resolver(ttl_seconds=900).resolve_candidates(asset)

    assert candidates[0].uri == STREAM


@pytest.mark.anyio
async def test_relay_is_always_available(repo):
    asset = await repo.insert(None, make_draft(storage_references=[]))

    candidates = _resolver().resolve_candidates(asset)

    assert candidates == [PlaybackCandidate(backend_type=BackendType.ORIGIN_RELAY, uri=f"{RELAY}/{asset.id}")]


@pytest.mark.anyio
async def test_custom_order_is_honored(repo):
    asset = await _ready_asset(repo)

    candidates = _resolver(order=[BackendType.ORIGIN_RELAY, BackendType.CDN]).resolve_candidates(asset)

    assert [c.backend_type for c in candidates] == [BackendType.ORIGIN_RELAY, BackendType.CDN]


@pytest.mark.anyio
async def test_object_store_slot_uses_signer(repo):
    asset = await repo.insert("ext-1", make_draft())
    signed = []

    def signer(uri: str) -> str:
        signed.append(uri)
        return f"https://{BUCKET}.s3.amazonaws.com/videos/moot-court-final.mp4?X-Amz-Signature=abc"

    candidates = _resolver(
        order=[BackendType.OBJECT_STORE, BackendType.ORIGIN_RELAY], signer=signer
    ).resolve_candidates(asset)

    assert signed == [STORED]
    assert candidates[0].backend_type == BackendType.OBJECT_STORE
    assert "X-Amz-Signature" in candidates[0].uri


@pytest.mark.anyio
async def test_object_store_slot_is_empty_without_signer(repo):
    asset = await repo.insert("ext-1", make_draft())

    candidates = _resolver(order=[BackendType.OBJECT_STORE, BackendType.ORIGIN_RELAY]).resolve_candidates(asset)

    assert [c.backend_type for c in candidates] == [BackendType.ORIGIN_RELAY]


@pytest.mark.anyio
async def test_candidates_are_unique_by_uri(repo):
    cdn_url = f"{CDN}/videos/moot-court-final.mp4"
    asset = await repo.insert(
        "ext-1",
        make_draft(
            storage_references=[
                StorageReference(backend_type=BackendType.CDN, uri=cdn_url),
                StorageReference(backend_type=BackendType.OBJECT_STORE, uri=STORED),
            ]
        ),
    )

    uris = [c.uri for c in _resolver().resolve_candidates(asset)]

    assert uris.count(cdn_url) == 1


def test_parse_playback_order_drops_unknowns_and_duplicates():
    assert parse_playback_order(["cdn", "bogus", "CDN", " origin_relay "]) == [
        BackendType.CDN,
        BackendType.ORIGIN_RELAY,
    ]
    assert parse_playback_order([]) == list(DEFAULT_PLAYBACK_ORDER)


# ─────────────────────────────────────────────────────────────────────────────
# Advancing on client failure
# ─────────────────────────────────────────────────────────────────────────────

def _candidates(n: int):
    return [PlaybackCandidate(backend_type=BackendType.CDN, uri=f"{CDN}/v{i}.mp4") for i in range(n)]


def test_advance_walks_forward_then_stops():
    cands = _candidates(3)

    assert PlaybackResolver.advance(cands, 0) == cands[1]
    assert PlaybackResolver.advance(cands, 1) == cands[2]
    assert PlaybackResolver.advance(cands, 2) is None
    assert PlaybackResolver.advance(cands, -1) is None
    assert PlaybackResolver.advance([], 0) is None


def test_session_tries_each_candidate_once_then_exhausts():
    cands = _candidates(3)
    session = PlaybackSession(cands, asset_id="a1")

    assert session.current == cands[0]
    assert session.fail() == cands[1]
    assert session.fail() == cands[2]
    with pytest.raises(PlaybackExhausted) as exc:
        session.fail()

    assert session.exhausted is True
    assert session.failed == [0, 1, 2]
    assert exc.value.details["tried"] == [c.uri for c in cands]
    assert exc.value.message == PlaybackExhausted.user_message


def test_stale_failure_report_is_ignored():
    cands = _candidates(3)
    session = PlaybackSession(cands)
    session.fail(0)

    # a late error event for the first URL must not skip the second
    assert session.fail(0) == cands[1]
    assert session.index == 1
    assert session.failed == [0]


def test_empty_session_is_immediately_exhausted():
    session = PlaybackSession([])

    assert session.exhausted
    with pytest.raises(PlaybackExhausted):
        session.fail()


@pytest.mark.anyio
async def test_session_from_resolver(repo):
    asset = await _ready_asset(repo)

    session = _resolver().session(asset)

    assert session.current.uri == STREAM
    assert session.asset_id == str(asset.id)
