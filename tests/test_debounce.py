"""Render debouncing: bursts of requests collapse into one Render."""

import asyncio

from conftest import drain
from unitdash.dash.action import Render
from unitdash.dash.debounce import DebounceCoordinator


async def test_two_rapid_requests_yield_one_render():
    actions: asyncio.Queue = asyncio.Queue()
    debouncer = DebounceCoordinator(actions, interval=0.05)
    debouncer.start()
    try:
        debouncer.request()
        await asyncio.sleep(0.01)
        debouncer.request()
        await asyncio.sleep(0.15)
        assert drain(actions) == [Render()]
    finally:
        await debouncer.stop()


async def test_zero_interval_coalesces_same_tick_burst():
    actions: asyncio.Queue = asyncio.Queue()
    debouncer = DebounceCoordinator(actions, interval=0.0)
    debouncer.start()
    try:
        for _ in range(5):
            debouncer.request()
        await asyncio.sleep(0.02)
        assert drain(actions) == [Render()]
    finally:
        await debouncer.stop()


async def test_separate_bursts_render_separately():
    actions: asyncio.Queue = asyncio.Queue()
    debouncer = DebounceCoordinator(actions, interval=0.02)
    debouncer.start()
    try:
        debouncer.request()
        await asyncio.sleep(0.08)
        debouncer.request()
        debouncer.request()
        await asyncio.sleep(0.08)
        assert drain(actions) == [Render(), Render()]
    finally:
        await debouncer.stop()


async def test_stop_cancels_pending_render():
    actions: asyncio.Queue = asyncio.Queue()
    debouncer = DebounceCoordinator(actions, interval=0.5)
    debouncer.start()
    debouncer.request()
    await asyncio.sleep(0.01)
    await debouncer.stop()
    await asyncio.sleep(0.01)
    assert drain(actions) == []
