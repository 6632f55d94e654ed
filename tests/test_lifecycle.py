# tests/test_lifecycle.py
import pytest

from media_resolver.core.exceptions import InvalidStateTransition
from media_resolver.schemas.enums import ProcessingState as S
from media_resolver.services.lifecycle import can_transition, transition, try_transition
from tests.fixtures.assets import make_draft


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (S.PENDING, S.REGISTERED, True),
        (S.REGISTERED, S.THUMBNAIL_PENDING, True),
        (S.THUMBNAIL_PENDING, S.READY, True),
        (S.REGISTERED, S.READY, True),
        (S.READY, S.READY, True),
        (S.PENDING, S.DISCOVERY_FAILED, True),
        (S.READY, S.DISCOVERY_FAILED, True),
        (S.DISCOVERY_FAILED, S.PENDING, True),
        (S.READY, S.REGISTERED, False),
        (S.THUMBNAIL_PENDING, S.PENDING, False),
        (S.DISCOVERY_FAILED, S.REGISTERED, False),
    ],
)
def test_can_transition(current, target, allowed):
    assert can_transition(current, target) is allowed


@pytest.mark.anyio
async def test_transition_persists_forward_move(repo):
    asset = await repo.insert("ext-1", make_draft())

    moved = await transition(repo, asset, S.THUMBNAIL_PENDING)

    assert moved.processing_state == S.THUMBNAIL_PENDING
    assert (await repo.get(asset.id)).processing_state == S.THUMBNAIL_PENDING


@pytest.mark.anyio
async def test_backward_move_is_rejected(repo):
    asset = await repo.insert("ext-1", make_draft(initial_state=S.READY))

    with pytest.raises(InvalidStateTransition) as exc:
        await transition(repo, asset, S.REGISTERED)

    assert exc.value.details == {"from": "READY", "to": "REGISTERED"}
    assert (await repo.get(asset.id)).processing_state == S.READY


@pytest.mark.anyio
async def test_ready_requires_a_storage_reference(repo):
    asset = await repo.insert(None, make_draft(storage_references=[]))

    assert await try_transition(repo, asset, S.READY) is None
    assert (await repo.get(asset.id)).processing_state == S.PENDING


@pytest.mark.anyio
async def test_same_state_is_a_noop(repo):
    asset = await repo.insert("ext-1", make_draft())

    again = await transition(repo, asset, S.REGISTERED)

    assert again.updated_at == asset.updated_at


@pytest.mark.anyio
async def test_ready_asset_can_be_marked_discovery_failed_and_retried(repo):
    # a READY video that later vanishes from every backend is still failable
    asset = await repo.insert("ext-1", make_draft(initial_state=S.READY))

    failed = await transition(repo, asset, S.DISCOVERY_FAILED)
    retried = await transition(repo, failed, S.PENDING)

    assert failed.processing_state == S.DISCOVERY_FAILED
    assert retried.processing_state == S.PENDING
