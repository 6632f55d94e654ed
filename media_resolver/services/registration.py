from __future__ import annotations

"""
Asset Registration Resolver
===========================

`find_or_create(external_id, draft)` registers an upload exactly once per
external processor asset id, however many duplicate or concurrent calls race.

Flow (bounded, never loops)
---------------------------
    for attempt in 1..N (N ≤ 3):
        read by external id ─▶ found?           → Found
        insert              ─▶ ok?              → CreatedNew
                            ─▶ UniqueViolation  → re-read ─▶ found? → Found
    → Inconsistent   (constraint says the row exists but it is not readable)

The storage-layer UNIQUE constraint is the only coordination; there are no
application locks. A `None` external id is never de-duplicated.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from media_resolver.core.config import MAX_REGISTRATION_ATTEMPTS, settings
from media_resolver.core.exceptions import (
    InvalidStateTransition,
    RegistrationInconsistency,
    UniqueViolation,
)
from media_resolver.core.metrics import inc_registration
from media_resolver.repositories.video_assets import VideoAssetRepositoryProtocol
from media_resolver.schemas.enums import ProcessingState
from media_resolver.schemas.media import VideoAsset, VideoAssetDraft
from media_resolver.services.lifecycle import STATES_REQUIRING_REFERENCES

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Tagged outcomes
# ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class Found:
    asset: VideoAsset
    attempts: int = 1


@dataclass(frozen=True)
class CreatedNew:
    asset: VideoAsset
    attempts: int = 1


@dataclass(frozen=True)
class Inconsistent:
    external_id: str
    attempts: int


RegistrationOutcome = Union[Found, CreatedNew, Inconsistent]


def _normalize_external_id(external_id: Optional[str]) -> Optional[str]:
    if external_id is None:
        return None
    s = str(external_id).strip()
    return s or None


class AssetRegistrationResolver:
    def __init__(self, repo: VideoAssetRepositoryProtocol, *, max_attempts: Optional[int] = None) -> None:
        self.repo = repo
        attempts = max_attempts if max_attempts is not None else settings.REGISTRATION_MAX_ATTEMPTS
        self.max_attempts = max(1, min(int(attempts), MAX_REGISTRATION_ATTEMPTS))

    @staticmethod
    def _validate(draft: VideoAssetDraft) -> None:
        target = draft.resolved_initial_state
        if target in STATES_REQUIRING_REFERENCES and not draft.storage_references:
            raise InvalidStateTransition(ProcessingState.PENDING, target)

    async def resolve(self, external_id: Optional[str], draft: VideoAssetDraft) -> RegistrationOutcome:
        """Run the bounded find-or-insert loop and return a tagged outcome."""
        self._validate(draft)
        ext = _normalize_external_id(external_id)

        if ext is None:
            asset = await self.repo.insert(None, draft)
            inc_registration("created")
            logger.info("registered asset %s without external id", asset.id)
            return CreatedNew(asset)

        for attempt in range(1, self.max_attempts + 1):
            existing = await self.repo.get_by_external_id(ext)
            if existing is not None:
                inc_registration("found")
                logger.debug("external asset %s already registered as %s", ext, existing.id)
                return Found(existing, attempts=attempt)

            try:
                asset = await self.repo.insert(ext, draft)
            except UniqueViolation:
                logger.info("attempt %d: lost registration race for external asset %s", attempt, ext)
                existing = await self.repo.get_by_external_id(ext)
                if existing is not None:
                    inc_registration("found_after_race")
                    return Found(existing, attempts=attempt)
                logger.warning(
                    "attempt %d: external asset %s rejected as duplicate but not readable", attempt, ext
                )
                continue

            inc_registration("created")
            logger.info("registered asset %s for external asset %s", asset.id, ext)
            return CreatedNew(asset, attempts=attempt)

        inc_registration("inconsistent")
        logger.error(
            "registration for external asset %s inconsistent after %d attempt(s)", ext, self.max_attempts
        )
        return Inconsistent(ext, attempts=self.max_attempts)

    async def find_or_create(
        self, external_id: Optional[str], draft: VideoAssetDraft
    ) -> Tuple[VideoAsset, bool]:
        """
        Return `(asset, created)`.

        Raises
        ------
        RegistrationInconsistency
            The bounded loop ended without a readable row.
        StorageUnavailable
            The relational store is unreachable (not retried here).
        """
        outcome = await self.resolve(external_id, draft)
        if isinstance(outcome, CreatedNew):
            return outcome.asset, True
        if isinstance(outcome, Found):
            return outcome.asset, False
        raise RegistrationInconsistency(external_id=outcome.external_id, attempts=outcome.attempts)


__all__ = [
    "Found",
    "CreatedNew",
    "Inconsistent",
    "RegistrationOutcome",
    "AssetRegistrationResolver",
]
