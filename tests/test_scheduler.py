"""Tests for the eviction sweep."""

from reverse_captcha.scheduler import shutdown_scheduler, start_scheduler, sweep


def test_sweep_evicts_solved_and_stale(store, clock):
    solved = store.create()
    store.mark_solved(solved.token)
    stale = store.create()
    clock.now = stale.expires_at + store.eviction_grace_ms
    fresh = store.create()

    sweep(store)

    assert solved.token not in store
    assert stale.token not in store
    assert fresh.token in store


def test_sweep_survives_store_errors(store, monkeypatch):
    def broken_evict():
        raise RuntimeError("boom")

    monkeypatch.setattr(store, "evict", broken_evict)

    sweep(store)


def test_scheduler_registers_sweep_job(store):
    scheduler = start_scheduler(store, interval_seconds=60)
    try:
        assert scheduler.running
        job = scheduler.get_job("evict_challenges")
        assert job is not None
        assert job.args == (store,)
    finally:
        shutdown_scheduler(scheduler)
