from __future__ import annotations

"""
VideoAsset processing-state machine.

    PENDING ─▶ REGISTERED ─▶ THUMBNAIL_PENDING ─▶ READY
       ▲
       └──────────── DISCOVERY_FAILED ◀── (any, when the video cannot be found)

States only move forward by rank; the single backward edge is
DISCOVERY_FAILED → PENDING (an explicit re-attempt). Re-entering the current
state is a no-op.
"""

import logging
from typing import Optional

from media_resolver.core.exceptions import InvalidStateTransition
from media_resolver.schemas.enums import ProcessingState
from media_resolver.schemas.media import VideoAsset

logger = logging.getLogger(__name__)

# DISCOVERY_FAILED ranks last so any state, READY included, can fall into it.
_RANK = {
    ProcessingState.PENDING: 0,
    ProcessingState.REGISTERED: 1,
    ProcessingState.THUMBNAIL_PENDING: 2,
    ProcessingState.READY: 3,
    ProcessingState.DISCOVERY_FAILED: 4,
}

# States that are only valid once at least one storage reference is known.
STATES_REQUIRING_REFERENCES = frozenset(
    {ProcessingState.REGISTERED, ProcessingState.THUMBNAIL_PENDING, ProcessingState.READY}
)


def can_transition(current: ProcessingState, target: ProcessingState) -> bool:
    if current == target:
        return True
    if current == ProcessingState.DISCOVERY_FAILED and target == ProcessingState.PENDING:
        return True
    return _RANK[target] > _RANK[current]


def check_transition(asset: VideoAsset, target: ProcessingState) -> None:
    """Raise `InvalidStateTransition` unless `asset` may move to `target`."""
    current = asset.processing_state
    if not can_transition(current, target):
        raise InvalidStateTransition(current, target, asset_id=str(asset.id))
    if target in STATES_REQUIRING_REFERENCES and not asset.storage_references:
        raise InvalidStateTransition(current, target, asset_id=str(asset.id))


async def transition(repo, asset: VideoAsset, target: ProcessingState) -> VideoAsset:
    """Validate and persist a state change; returns the stored asset."""
    check_transition(asset, target)
    if asset.processing_state == target:
        return asset
    logger.info("asset %s: %s → %s", asset.id, asset.processing_state.value, target.value)
    return await repo.set_processing_state(asset.id, target)


async def try_transition(repo, asset: VideoAsset, target: ProcessingState) -> Optional[VideoAsset]:
    """Like `transition()` but returns None instead of raising when not allowed."""
    try:
        return await transition(repo, asset, target)
    except InvalidStateTransition as e:
        logger.debug("skipped transition for %s: %s", asset.id, e.message)
        return None


__all__ = [
    "STATES_REQUIRING_REFERENCES",
    "can_transition",
    "check_transition",
    "transition",
    "try_transition",
]
