"""Tests for the jittered ticker."""

import asyncio
import random

import pytest

from blockmind.scheduler import JitteredTicker


def test_delays_stay_inside_window():
    ticker = JitteredTicker(lambda: None, 3, 8, rng=random.Random(42))
    delays = [ticker.next_delay() for _ in range(200)]
    assert all(3 <= delay <= 8 for delay in delays)
    assert len(set(delays)) > 1


def test_invalid_window_is_rejected():
    with pytest.raises(ValueError):
        JitteredTicker(lambda: None, 5, 1)
    with pytest.raises(ValueError):
        JitteredTicker(lambda: None, -1, 1)


@pytest.mark.asyncio
async def test_ticker_fires_until_stopped():
    fired = []
    ticker = JitteredTicker(lambda: fired.append(1), 0.001, 0.003, rng=random.Random(0))

    ticker.start()
    assert ticker.running
    await asyncio.sleep(0.05)
    await ticker.stop()

    count = ticker.fire_count
    assert count >= 2
    assert len(fired) == count
    assert not ticker.running

    await asyncio.sleep(0.02)
    assert ticker.fire_count == count


@pytest.mark.asyncio
async def test_start_twice_keeps_one_loop():
    ticker = JitteredTicker(lambda: None, 0.01, 0.01)
    ticker.start()
    first = ticker._task
    ticker.start()
    assert ticker._task is first
    await ticker.stop()
    # stopping again is harmless
    await ticker.stop()
