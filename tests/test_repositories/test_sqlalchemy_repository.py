# tests/test_repositories/test_sqlalchemy_repository.py
import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from media_resolver.core.exceptions import StorageUnavailable, UniqueViolation
from media_resolver.repositories.video_assets import SqlAlchemyVideoAssetRepository
from media_resolver.schemas.enums import BackendType, ProcessingState, ThumbnailMethod
from media_resolver.schemas.media import StorageReference, ThumbnailReference, utcnow
from media_resolver.services.registration import AssetRegistrationResolver
from tests.fixtures.assets import CDN, make_draft
from tests.fixtures.db import requires_postgres


# ─────────────────────────────────────────────────────────────────────────────
# Error mapping (no database needed)
# ─────────────────────────────────────────────────────────────────────────────

class _DownSessionMaker:
    """Stands in for an async_sessionmaker whose connect always fails."""

    def __call__(self):
        return self

    async def __aenter__(self):
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))

    async def __aexit__(self, *exc):
        return False


@pytest.mark.anyio
async def test_connectivity_errors_become_storage_unavailable():
    repo = SqlAlchemyVideoAssetRepository(_DownSessionMaker())

    with pytest.raises(StorageUnavailable) as exc:
        await repo.get_by_external_id("ext-1")

    assert exc.value.retryable is True


# ─────────────────────────────────────────────────────────────────────────────
# PostgreSQL (requires TEST_DATABASE_URL)
# ─────────────────────────────────────────────────────────────────────────────

@requires_postgres
@pytest.mark.anyio
async def test_unique_constraint_maps_to_unique_violation(sql_repo):
    await sql_repo.insert("ext-1", make_draft())

    with pytest.raises(UniqueViolation):
        await sql_repo.insert("ext-1", make_draft())


@requires_postgres
@pytest.mark.anyio
async def test_round_trip_preserves_reference_order(sql_repo):
    asset = await sql_repo.insert("ext-1", make_draft(metadata={"k": "v"}))
    cdn = StorageReference(backend_type=BackendType.CDN, uri=f"{CDN}/videos/moot-court-final.mp4")

    await sql_repo.add_storage_reference(asset.id, cdn, prepend=True)
    await sql_repo.mark_verified(asset.id, [cdn.uri], utcnow())
    await sql_repo.set_thumbnail(
        asset.id,
        ThumbnailReference(backend_type=BackendType.CDN, uri=f"{CDN}/t.jpg", method=ThumbnailMethod.SECONDARY),
    )
    await sql_repo.set_processing_state(asset.id, ProcessingState.READY)

    stored = await sql_repo.get_by_external_id("ext-1")
    assert [r.uri for r in stored.storage_references][0] == cdn.uri
    assert stored.storage_references[0].verified_at is not None
    assert stored.thumbnail_reference.method == ThumbnailMethod.SECONDARY
    assert stored.processing_state == ProcessingState.READY
    assert stored.metadata == {"k": "v"}


@requires_postgres
@pytest.mark.anyio
async def test_concurrent_registration_against_real_constraint(sql_repo):
    resolver = AssetRegistrationResolver(sql_repo)

    results = await asyncio.gather(*(resolver.find_or_create("ext-race", make_draft()) for _ in range(8)))

    assert len({asset.id for asset, _ in results}) == 1
    assert [created for _, created in results].count(True) == 1
