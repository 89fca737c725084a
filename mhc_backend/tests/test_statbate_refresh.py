from __future__ import annotations

import httpx
import pytest

from mhc_backend.jobs.dispatcher import ItemOutcome
from mhc_backend.jobs.statbate_refresh import StatbateRefreshJob
from mhc_backend.jobs.targets import TargetSelector
from mhc_backend.models.person import Person, ROLE_MODEL, ROLE_UNKNOWN, ROLE_VIEWER
from mhc_backend.services.directory import PersonDirectory, build_segment_providers
from mhc_backend.services.http import ExternalServiceError
from mhc_backend.services.snapshots import SnapshotStore
from mhc_backend.services.statbate import StatbateClient

from conftest import add_person

MODEL_BODY = {"data": {"rid": 77, "rank": 1200, "income": {"usd": 5.5}}}
MEMBER_BODY = {"data": {"did": 42, "all_time_tokens": 900}}


def _client(routes, calls):
    """routes: path -> (status, json)"""

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        status, body = routes.get(request.url.path, (404, {"error": "not found"}))
        return httpx.Response(status, json=body)

    return StatbateClient(
        "https://statbate.test/api", token="t", transport=httpx.MockTransport(handler)
    )


def _job(db_manager, store, scheduler, clock, client, **overrides):
    providers, default_pool = build_segment_providers(
        db_manager, Person.statbate_refreshed_at
    )
    job = StatbateRefreshJob(
        store,
        scheduler,
        clock,
        overrides,
        selector=TargetSelector(providers, default_pool),
        client=client,
        directory=PersonDirectory(db_manager),
        snapshots=SnapshotStore(db_manager),
    )
    job.ensure()
    return job


@pytest.mark.asyncio
async def test_viewer_falls_back_to_model_source(db_manager, store, scheduler, clock):
    person = add_person(db_manager, "alice", ROLE_VIEWER)
    calls = []
    client = _client({"/api/model/chaturbate/alice/info": (200, MODEL_BODY)}, calls)
    job = _job(db_manager, store, scheduler, clock, client)

    entity = (await job.selector.select(job.config.policy()))[0]
    assert await job.refresh_one(entity) is ItemOutcome.SUCCEEDED

    assert calls == [
        "/api/members/chaturbate/alice/info",
        "/api/model/chaturbate/alice/info",
    ]
    refreshed = PersonDirectory(db_manager).get(person.id)
    assert refreshed.role == ROLE_MODEL
    assert refreshed.rid == 77
    assert refreshed.statbate_refreshed_at == clock.now()
    assert SnapshotStore(db_manager).counts_by_source() == {"statbate_model": 1}
    assert job.stats.total_role_changes == 1


@pytest.mark.asyncio
async def test_transient_error_does_not_fall_back(db_manager, store, scheduler, clock):
    add_person(db_manager, "bob", ROLE_MODEL)
    calls = []
    client = _client(
        {
            "/api/model/chaturbate/bob/info": (503, {}),
            "/api/members/chaturbate/bob/info": (200, MEMBER_BODY),
        },
        calls,
    )
    job = _job(db_manager, store, scheduler, clock, client)
    entity = (await job.selector.select(job.config.policy()))[0]

    with pytest.raises(ExternalServiceError):
        await job.refresh_one(entity)
    assert calls == ["/api/model/chaturbate/bob/info"]


@pytest.mark.asyncio
async def test_not_found_everywhere_keeps_role(db_manager, store, scheduler, clock):
    person = add_person(db_manager, "carol", ROLE_UNKNOWN)
    calls = []
    job = _job(db_manager, store, scheduler, clock, _client({}, calls))

    await job.run_cycle("manual")

    refreshed = PersonDirectory(db_manager).get(person.id)
    assert refreshed.role == ROLE_UNKNOWN
    assert refreshed.statbate_refreshed_at is not None
    assert job.stats.last_run_failed == 1
    assert job.stats.total_not_found == 1
    assert SnapshotStore(db_manager).count() == 0


@pytest.mark.asyncio
async def test_cycle_counts_and_delays(db_manager, store, scheduler, clock):
    for name in ("p1", "p2", "p3"):
        add_person(db_manager, name, ROLE_MODEL, following=True)
    add_person(db_manager, "p4", ROLE_VIEWER)
    calls = []
    routes = {
        "/api/model/chaturbate/p1/info": (200, MODEL_BODY),
        "/api/model/chaturbate/p2/info": (500, {}),
        "/api/model/chaturbate/p3/info": (200, MODEL_BODY),
        "/api/members/chaturbate/p4/info": (200, MEMBER_BODY),
    }
    job = _job(
        db_manager, store, scheduler, clock, _client(routes, calls),
        batch_size=2,
        delay_between_requests_seconds=2,
        delay_between_batches_seconds=30,
    )

    assert await job.run_cycle("manual") is True

    assert job.stats.last_run_succeeded == 3
    assert job.stats.last_run_failed == 1
    assert job.stats.total_runs == 1
    assert clock.sleeps.count(2) == 4
    assert clock.sleeps.count(30) == 1
    assert store.load_state(job.name).stats["total_succeeded"] == 3
