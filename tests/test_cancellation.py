"""
Cancellation and Reasoning Mode Tests
=====================================
"""

import asyncio

import pytest

from chat_labs.models.chat_models import ThinkingMode, ThinkingModeUI
from chat_labs.services.cancellation import CancellationSignal
from chat_labs.services.reasoning_modes import generation_options, normalize_thinking_mode


class TestCancellationSignal:

    @pytest.mark.asyncio
    async def test_run_returns_result(self):
        async def work():
            return 42

        assert await CancellationSignal().run(work()) == 42

    @pytest.mark.asyncio
    async def test_cancel_interrupts_in_flight_call(self):
        signal = CancellationSignal()
        started = asyncio.Event()
        finished = []

        async def slow():
            started.set()
            try:
                await asyncio.sleep(10)
            finally:
                finished.append(True)

        async def disconnect():
            await started.wait()
            signal.cancel("client disconnected")

        asyncio.ensure_future(disconnect())
        with pytest.raises(asyncio.CancelledError):
            await signal.run(slow())
        await asyncio.sleep(0)

        assert signal.reason == "client disconnected"
        assert finished == [True]

    @pytest.mark.asyncio
    async def test_already_cancelled_signal_never_starts_work(self):
        signal = CancellationSignal()
        signal.cancel("gone")
        ran = []

        async def work():
            ran.append(True)

        with pytest.raises(asyncio.CancelledError):
            await signal.run(work())
        assert ran == []

    def test_check_and_first_reason_wins(self):
        signal = CancellationSignal()
        signal.check()
        signal.cancel("first")
        signal.cancel("second")
        assert signal.is_cancelled
        assert signal.reason == "first"
        with pytest.raises(asyncio.CancelledError):
            signal.check()


class TestReasoningModes:

    @pytest.mark.parametrize("value, expected", [
        (None, ThinkingMode.NORMAL),
        ("standard", ThinkingMode.NORMAL),
        (ThinkingModeUI.THINKING, ThinkingMode.THINKING),
        ("FAST", ThinkingMode.FAST),
        ("normal", ThinkingMode.NORMAL),
        (ThinkingMode.THINKING, ThinkingMode.THINKING),
        ("turbo", ThinkingMode.NORMAL),
    ])
    def test_normalize(self, value, expected):
        assert normalize_thinking_mode(value) == expected

    def test_options_per_mode(self):
        assert generation_options(ThinkingMode.NORMAL).reasoning_effort == "medium"
        assert generation_options(ThinkingMode.THINKING).reasoning_effort == "high"
        fast = generation_options(ThinkingMode.FAST)
        assert fast.reasoning_effort == "low"
        assert fast.fast_image_model is True

    def test_options_are_copies(self):
        generation_options(ThinkingMode.NORMAL).temperature = 0.0
        assert generation_options(ThinkingMode.NORMAL).temperature == 0.7
