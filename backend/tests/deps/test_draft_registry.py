from typing import cast

from courtdesk.deps import DraftRegistry
from courtdesk.usecases.workflow import BookingWorkflow


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _workflow() -> BookingWorkflow:
    return cast(BookingWorkflow, object())


def test_untouched_draft_expires_after_ttl() -> None:
    clock = FakeClock()
    registry = DraftRegistry(ttl_seconds=60, clock=clock)
    draft_id = registry.add(5, _workflow())

    clock.now += 61

    assert registry.get(draft_id, 5) is None
    assert len(registry) == 0


def test_access_keeps_a_draft_alive() -> None:
    clock = FakeClock()
    registry = DraftRegistry(ttl_seconds=60, clock=clock)
    workflow = _workflow()
    draft_id = registry.add(5, workflow)

    for _ in range(3):
        clock.now += 45
        assert registry.get(draft_id, 5) is workflow


def test_adding_sweeps_expired_drafts() -> None:
    clock = FakeClock()
    registry = DraftRegistry(ttl_seconds=60, clock=clock)
    for _ in range(5):
        registry.add(5, _workflow())

    clock.now += 120
    fresh = registry.add(6, _workflow())

    assert len(registry) == 1
    assert registry.get(fresh, 6) is not None


def test_full_registry_evicts_least_recently_used() -> None:
    clock = FakeClock()
    registry = DraftRegistry(ttl_seconds=3600, max_drafts=2, clock=clock)
    first = registry.add(5, _workflow())
    clock.now += 1
    second = registry.add(5, _workflow())
    clock.now += 1
    assert registry.get(first, 5) is not None

    third = registry.add(5, _workflow())

    assert len(registry) == 2
    assert registry.get(second, 5) is None
    assert registry.get(first, 5) is not None
    assert registry.get(third, 5) is not None
