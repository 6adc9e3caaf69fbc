from __future__ import annotations

import asyncio

import pytest

from app.services.scheduling import FlightInProgressError, SingleFlightScheduler


def test_debounce_coalesces_bursts() -> None:
    """Only the last callback scheduled inside the window runs."""

    calls: list[str] = []

    async def scenario() -> None:
        scheduler = SingleFlightScheduler(0.02)

        def make(label: str):
            async def _callback() -> None:
                calls.append(label)

            return _callback

        scheduler.debounce(make("first"))
        scheduler.debounce(make("second"))
        assert scheduler.pending
        scheduler.debounce(make("third"))
        await scheduler.join()
        assert not scheduler.pending

    asyncio.run(scenario())

    assert calls == ["third"]


def test_try_acquire_is_exclusive() -> None:
    scheduler = SingleFlightScheduler(0)

    assert scheduler.try_acquire()
    assert not scheduler.try_acquire()
    scheduler.release()
    assert scheduler.try_acquire()


def test_flight_releases_after_error() -> None:
    async def scenario(scheduler: SingleFlightScheduler) -> None:
        with pytest.raises(RuntimeError, match="boom"):
            async with scheduler.flight():
                assert scheduler.busy
                raise RuntimeError("boom")
        assert not scheduler.busy

        async with scheduler.flight():
            with pytest.raises(FlightInProgressError):
                async with scheduler.flight():
                    pass

    scheduler = SingleFlightScheduler(0)
    asyncio.run(scenario(scheduler))

    assert not scheduler.busy


def test_running_callback_survives_new_debounce() -> None:
    """A callback already past its delay is not canceled by a new trigger."""

    finished: list[str] = []

    async def scenario() -> None:
        scheduler = SingleFlightScheduler(0)
        gate = asyncio.Event()

        async def slow() -> None:
            await gate.wait()
            finished.append("slow")

        async def quick() -> None:
            finished.append("quick")

        scheduler.debounce(slow)
        await asyncio.sleep(0.01)
        scheduler.debounce(quick)
        await asyncio.sleep(0.01)
        gate.set()
        await scheduler.join()

    asyncio.run(scenario())

    assert sorted(finished) == ["quick", "slow"]


def test_dispose_cancels_pending_run() -> None:
    calls: list[int] = []

    async def scenario() -> None:
        scheduler = SingleFlightScheduler(10)

        async def _callback() -> None:
            calls.append(1)

        scheduler.debounce(_callback)
        await scheduler.dispose()
        assert not scheduler.pending
        await scheduler.join()

    asyncio.run(scenario())

    assert calls == []
