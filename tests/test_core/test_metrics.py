# tests/test_core/test_metrics.py
import pytest
from prometheus_client import REGISTRY

from media_resolver.core.metrics import inc_registration
from media_resolver.services.registration import AssetRegistrationResolver
from tests.fixtures.assets import make_draft


def _registrations(outcome: str) -> float:
    return REGISTRY.get_sample_value("media_registrations_total", {"outcome": outcome}) or 0.0


def test_registration_counter_increments():
    before = _registrations("inconsistent")

    inc_registration("inconsistent")

    assert _registrations("inconsistent") == before + 1


@pytest.mark.anyio
async def test_find_or_create_records_outcomes(repo):
    created_before = _registrations("created")
    found_before = _registrations("found")
    resolver = AssetRegistrationResolver(repo)

    await resolver.find_or_create("ext-m", make_draft())
    await resolver.find_or_create("ext-m", make_draft())

    assert _registrations("created") == created_before + 1
    assert _registrations("found") == found_before + 1
