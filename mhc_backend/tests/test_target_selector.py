from __future__ import annotations

from datetime import datetime

import pytest

from mhc_backend.jobs.targets import (
    SEGMENT_ORDER,
    PriorityPolicy,
    SegmentProvider,
    TargetEntity,
    TargetSelector,
)
from mhc_backend.models.person import Person
from mhc_backend.services.directory import build_segment_providers

from conftest import add_person


class ListProvider(SegmentProvider):
    def __init__(self, *ids):
        self.entities = [TargetEntity(id=i, username=f"user{i}") for i in ids]
        self.calls = []

    async def list_candidates(self, limit, exclude_ids):
        self.calls.append((limit, exclude_ids))
        return [e for e in self.entities if e.id not in exclude_ids][:limit]


def _ids(entities):
    return [e.id for e in entities]


@pytest.mark.asyncio
async def test_segments_merge_in_priority_order_without_duplicates():
    watchlist = ListProvider(1, 2, 3)
    following = ListProvider(3, 4)
    selector = TargetSelector({"watchlist": watchlist, "following": following})
    policy = PriorityPolicy(
        segments={"following": True, "watchlist": True}, max_per_run=4
    )

    selected = await selector.select(policy)

    assert _ids(selected) == [1, 2, 3, 4]
    assert following.calls == [(1, frozenset({1, 2, 3}))]


@pytest.mark.asyncio
async def test_cap_holds_with_every_segment_enabled():
    providers = {
        name: ListProvider(*range(i * 10, i * 10 + 10))
        for i, name in enumerate(SEGMENT_ORDER)
    }
    selector = TargetSelector(providers, default_pool=ListProvider(*range(200, 210)))
    policy = PriorityPolicy(segments={name: True for name in providers}, max_per_run=15)

    selected = await selector.select(policy)

    assert len(selected) == 15
    assert len(set(_ids(selected))) == 15
    assert _ids(selected) == list(range(15))
    # 名额用尽后不再查询后续分组
    assert providers["followers"].calls == []


@pytest.mark.asyncio
async def test_default_pool_fills_remaining_slots():
    selector = TargetSelector(
        {"watchlist": ListProvider(1)}, default_pool=ListProvider(1, 5, 6, 7)
    )
    policy = PriorityPolicy(segments={"watchlist": True}, max_per_run=3)

    assert _ids(await selector.select(policy)) == [1, 5, 6]


@pytest.mark.asyncio
async def test_disabled_and_missing_segments_are_skipped():
    live = ListProvider(9)
    selector = TargetSelector({"live": live, "following": ListProvider(2)})
    policy = PriorityPolicy(
        segments={"watchlist": True, "live": True, "following": False}, max_per_run=10
    )

    assert _ids(await selector.select(policy)) == [9]


def test_policy_rejects_unknown_segment():
    with pytest.raises(ValueError):
        PriorityPolicy(segments={"favourites": True})
    with pytest.raises(ValueError):
        PriorityPolicy(max_per_run=0)


@pytest.mark.asyncio
async def test_person_providers_order_by_staleness(db_manager):
    old = datetime(2024, 1, 1)
    new = datetime(2024, 6, 1)
    fresh = add_person(db_manager, "fresh", following=True, statbate_refreshed_at=new)
    stale = add_person(db_manager, "stale", following=True, statbate_refreshed_at=old)
    never = add_person(db_manager, "never", following=True)
    add_person(db_manager, "excluded", following=True, is_excluded=True)
    loner = add_person(db_manager, "loner")

    providers, default_pool = build_segment_providers(
        db_manager, Person.statbate_refreshed_at
    )
    selector = TargetSelector(providers, default_pool)

    following_only = await selector.select(
        PriorityPolicy(segments={"following": True}, max_per_run=3)
    )
    assert [e.username for e in following_only] == ["never", "stale", "fresh"]

    everyone = await selector.select(
        PriorityPolicy(segments={"following": True}, max_per_run=10)
    )
    assert _ids(everyone) == [never.id, stale.id, fresh.id, loner.id]
