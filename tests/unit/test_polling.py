"""Tests for the deadline-bounded polling primitive."""

from __future__ import annotations

import asyncio
import time

import pytest

from sdlc_flow.errors import PollTimeout
from sdlc_flow.polling import poll_until


class TestPollUntil:

    @pytest.mark.asyncio
    async def test_returns_first_truthy_value(self):
        values = iter([None, 0, '', 'ready'])

        async def probe():
            return next(values)

        result = await poll_until(probe, interval=0.001, timeout=1.0)
        assert result == 'ready'

    @pytest.mark.asyncio
    async def test_immediate_success_does_not_sleep(self):
        calls = []

        async def probe():
            calls.append(1)
            return True

        start = time.monotonic()
        assert await poll_until(probe, interval=5.0, timeout=10.0) is True
        assert time.monotonic() - start < 1.0
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_timeout_raises_poll_timeout(self):
        async def probe():
            return False

        with pytest.raises(PollTimeout) as exc_info:
            await poll_until(probe, interval=0.01, timeout=0.05, description='widget')

        assert exc_info.value.description == 'widget'
        assert exc_info.value.elapsed > 0
        assert 'widget' in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_sleep_capped_at_remaining_budget(self):
        async def probe():
            return False

        start = time.monotonic()
        with pytest.raises(PollTimeout):
            await poll_until(probe, interval=10.0, timeout=0.1)
        assert time.monotonic() - start < 1.0

    @pytest.mark.asyncio
    async def test_slow_probe_bounded_by_deadline(self):
        async def probe():
            await asyncio.sleep(10)
            return True

        start = time.monotonic()
        with pytest.raises(PollTimeout):
            await poll_until(probe, interval=0.01, timeout=0.1)
        assert time.monotonic() - start < 1.0

    @pytest.mark.asyncio
    async def test_probe_exceptions_propagate(self):
        async def probe():
            raise RuntimeError('boom')

        with pytest.raises(RuntimeError, match='boom'):
            await poll_until(probe, interval=0.01, timeout=1.0)

    @pytest.mark.asyncio
    async def test_zero_timeout_never_calls_probe(self):
        calls = []

        async def probe():
            calls.append(1)
            return True

        with pytest.raises(PollTimeout):
            await poll_until(probe, interval=0.01, timeout=0)
        assert calls == []

    @pytest.mark.asyncio
    async def test_non_positive_interval_rejected(self):
        async def probe():
            return True

        with pytest.raises(ValueError, match='interval'):
            await poll_until(probe, interval=0, timeout=1.0)

    @pytest.mark.asyncio
    async def test_cancellation_interrupts_sleep(self):
        async def probe():
            return False

        task = asyncio.create_task(poll_until(probe, interval=10.0, timeout=60.0))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
