from __future__ import annotations

import pytest


def test_ensure_job_state_is_idempotent(store):
    assert store.ensure_job_state("alpha", {"interval_minutes": 30}) is True
    store.save_config("alpha", {"interval_minutes": 5})

    assert store.ensure_job_state("alpha", {"interval_minutes": 30}) is False
    state = store.load_state("alpha")
    assert state.config == {"interval_minutes": 5}
    assert state.running is False
    assert state.paused is False


def test_load_missing_state_returns_none(store):
    assert store.load_state("missing") is None


def test_running_state_timestamps(store):
    store.ensure_job_state("alpha", {})

    store.save_running_state("alpha", True, False)
    started = store.load_state("alpha")
    assert started.running is True
    assert started.last_started_at is not None
    assert started.last_stopped_at is None

    store.save_running_state("alpha", True, True)
    paused = store.load_state("alpha")
    assert (paused.running, paused.paused) == (True, True)
    assert paused.last_started_at == started.last_started_at

    store.save_running_state("alpha", False, False)
    stopped = store.load_state("alpha")
    assert stopped.running is False
    assert stopped.last_stopped_at is not None


def test_paused_without_running_is_rejected(store):
    store.ensure_job_state("alpha", {})

    with pytest.raises(ValueError):
        store.save_running_state("alpha", False, True)
    assert store.load_state("alpha").paused is False


def test_save_stats_marks_last_run(store):
    store.ensure_job_state("alpha", {})

    store.save_stats("alpha", {"total_runs": 1})
    state = store.load_state("alpha")
    assert state.stats == {"total_runs": 1}
    assert state.last_run_at is not None

    store.ensure_job_state("beta", {})
    store.save_stats("beta", {}, mark_run=False)
    assert store.load_state("beta").last_run_at is None


def test_writes_create_missing_record(store):
    store.save_running_state("ghost", True, False)

    state = store.load_state("ghost")
    assert state.running is True
    assert state.config == {}


def test_jobs_to_restore(store):
    for name in ("a", "b", "c"):
        store.ensure_job_state(name, {})
    store.save_running_state("c", True, False)
    store.save_running_state("a", True, True)

    assert store.get_jobs_to_restore() == ["a", "c"]
    assert sorted(store.load_all_states()) == ["a", "b", "c"]
