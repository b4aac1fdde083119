import asyncio

import pytest

from scheduler import PollingScheduler
from sources.base import ChargeStatus, UpstreamError
from store.outlets import OutletReading, OutletStore


class FakeSource:
    """Replays scripted results per outlet; an exception instance is raised."""

    def __init__(self, results):
        self.results = {outlet_id: list(items) for outlet_id, items in results.items()}
        self.calls = []

    async def query(self, outlet_id):
        self.calls.append(outlet_id)
        result = self.results[outlet_id].pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def make_scheduler(source, store, outlets, mocker, interval_ms=1500, **kwargs):
    sleep = mocker.AsyncMock()
    scheduler = PollingScheduler(
        source=source,
        store=store,
        outlets=outlets,
        interval_ms=interval_ms,
        sleep=sleep,
        **kwargs
    )
    return scheduler, sleep


@pytest.mark.asyncio
async def test_cycle_with_one_failure(mocker):
    """Outlet A succeeds, outlet B fails: A is stored, B is absent, one error counted"""
    store = OutletStore(clock=lambda: 1700000000)
    source = FakeSource({
        "A": [ChargeStatus(power="5W", used_minutes=1)],
        "B": [UpstreamError("request failed with status code: 500")],
    })
    scheduler, sleep = make_scheduler(source, store, ["A", "B"], mocker)

    errors = await scheduler.run_cycle()

    assert errors == 1
    assert scheduler.last_error_count == 1
    assert scheduler.cycles == 1
    assert store.get("A") == (OutletReading("5W", 1, 1700000000), True)
    assert store.get("B") == (OutletReading(), False)
    assert source.calls == ["A", "B"]

    # Only the success is followed by the polling interval
    sleep.assert_awaited_once_with(1.5)


@pytest.mark.asyncio
async def test_failed_poll_keeps_stale_reading(mocker):
    now = [1000]
    store = OutletStore(clock=lambda: now[0])
    source = FakeSource({
        "A": [ChargeStatus(power="7W", used_minutes=3), UpstreamError("unexpected response code: 0")],
    })
    scheduler, _ = make_scheduler(source, store, ["A"], mocker)

    assert await scheduler.run_cycle() == 0
    now[0] = 2000
    assert await scheduler.run_cycle() == 1

    assert store.get("A") == (OutletReading("7W", 3, 1000), True)
    assert scheduler.cycles == 2


@pytest.mark.asyncio
async def test_failure_does_not_skip_remaining_outlets(mocker):
    store = OutletStore()
    source = FakeSource({
        "A": [UpstreamError("boom")],
        "B": [RuntimeError("unexpected")],
        "C": [ChargeStatus(power="", used_minutes=0)],
    })
    scheduler, sleep = make_scheduler(source, store, ["A", "B", "C"], mocker)

    errors = await scheduler.run_cycle()

    assert errors == 2
    assert source.calls == ["A", "B", "C"]
    assert "C" in store
    assert store.get("C")[0].power == ""
    assert sleep.await_count == 1


@pytest.mark.asyncio
async def test_reading_visible_before_cycle_completes(mocker):
    """Each success is written before the scheduler sleeps"""
    store = OutletStore()
    source = FakeSource({
        "A": [ChargeStatus(power="1W", used_minutes=1)],
        "B": [ChargeStatus(power="2W", used_minutes=2)],
    })
    seen = []

    async def sleep(seconds):
        seen.append([k for k in ("A", "B") if k in store])

    scheduler = PollingScheduler(source, store, ["A", "B"], interval_ms=10, sleep=sleep)

    await scheduler.run_cycle()

    assert seen == [["A"], ["A", "B"]]


@pytest.mark.asyncio
async def test_failure_is_logged_with_outlet_id(mocker, caplog):
    store = OutletStore()
    source = FakeSource({"B": [UpstreamError("request failed with status code: 503")]})
    scheduler, _ = make_scheduler(source, store, ["B"], mocker)

    with caplog.at_level("INFO"):
        await scheduler.run_cycle()

    assert "outlet B" in caplog.text
    assert "503" in caplog.text
    assert "Completed a full polling cycle (1 errors)" in caplog.text


@pytest.mark.asyncio
async def test_on_cycle_hook_receives_error_count(mocker):
    store = OutletStore()
    source = FakeSource({"A": [UpstreamError("down")]})
    on_cycle = mocker.AsyncMock()
    scheduler, _ = make_scheduler(source, store, ["A"], mocker, on_cycle=on_cycle)

    await scheduler.run_cycle()

    on_cycle.assert_awaited_once_with(1)


@pytest.mark.asyncio
async def test_replace_outlets_takes_effect_next_cycle(mocker):
    store = OutletStore()
    source = FakeSource({
        "A": [ChargeStatus(power="1W")],
        "B": [ChargeStatus(power="2W")],
        "C": [ChargeStatus(power="3W")],
    })
    scheduler = None

    async def sleep(seconds):
        # Swapping mid-cycle must not change the running cycle
        if source.calls == ["A"]:
            scheduler.replace_outlets(["C"])

    scheduler = PollingScheduler(source, store, ["A", "B"], interval_ms=10, sleep=sleep)

    await scheduler.run_cycle()
    assert source.calls == ["A", "B"]
    assert scheduler.outlets == ["C"]

    await scheduler.run_cycle()
    assert source.calls == ["A", "B", "C"]


def test_outlets_must_not_be_empty(mocker):
    with pytest.raises(ValueError):
        PollingScheduler(mocker.Mock(), OutletStore(), [], interval_ms=1000)

    scheduler = PollingScheduler(mocker.Mock(), OutletStore(), ["A"], interval_ms=1000)
    with pytest.raises(ValueError):
        scheduler.replace_outlets([])
    assert scheduler.outlets == ["A"]


@pytest.mark.asyncio
async def test_run_until_stopped(mocker):
    store = OutletStore()
    source = FakeSource({"A": [ChargeStatus(power=f"{i}W", used_minutes=i) for i in range(3)]})
    stop = asyncio.Event()

    async def sleep(seconds):
        if len(source.calls) == 3:
            stop.set()

    scheduler = PollingScheduler(source, store, ["A"], interval_ms=10, sleep=sleep)

    await asyncio.wait_for(scheduler.run(stop), timeout=5)

    assert scheduler.cycles == 3
    assert store.get("A")[0].power == "2W"
