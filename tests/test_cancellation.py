"""Tests for the cancellation token."""

import asyncio

import pytest

from design_agent.errors import OperationCancelled
from design_agent.services.cancellation import CancellationToken


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_cancel_is_idempotent(self):
        """Test that only the first cancel takes effect."""
        token = CancellationToken()
        calls = []
        token.on_cancel(lambda: calls.append("fired"))

        token.cancel("first")
        token.cancel("second")

        assert token.cancelled
        assert token.reason == "first"
        assert calls == ["fired"]

    def test_callback_registered_after_cancel_runs_immediately(self):
        """Test late callback registration."""
        token = CancellationToken()
        token.cancel()
        calls = []

        token.on_cancel(lambda: calls.append("late"))

        assert calls == ["late"]

    def test_failing_callback_does_not_stop_others(self):
        """Test that one broken callback does not prevent the rest."""
        token = CancellationToken()
        calls = []

        def broken():
            raise RuntimeError("boom")

        token.on_cancel(broken)
        token.on_cancel(lambda: calls.append("ok"))
        token.cancel()

        assert calls == ["ok"]

    def test_raise_if_cancelled(self):
        """Test the synchronous check."""
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("stop")
        with pytest.raises(OperationCancelled, match="stop"):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_race_returns_result(self):
        """Test that finished work is returned."""

        async def work():
            return 42

        assert await CancellationToken().race(work()) == 42

    @pytest.mark.asyncio
    async def test_race_propagates_work_exception(self):
        """Test that an exception from the work is raised unchanged."""

        async def work():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            await CancellationToken().race(work())

    @pytest.mark.asyncio
    async def test_race_cancels_work_and_runs_cleanup(self):
        """Test that firing the token cancels the work and lets it clean up."""
        token = CancellationToken()
        started = asyncio.Event()
        cleaned_up = []

        async def work():
            started.set()
            try:
                await asyncio.sleep(10)
            finally:
                cleaned_up.append(True)

        async def fire():
            await started.wait()
            token.cancel("user stop")

        asyncio.create_task(fire())
        with pytest.raises(OperationCancelled, match="user stop"):
            await token.race(work())

        assert cleaned_up == [True]

    @pytest.mark.asyncio
    async def test_race_on_cancelled_token_does_not_start_work(self):
        """Test that work is never started once the token fired."""
        token = CancellationToken()
        token.cancel()
        started = []

        async def work():
            started.append(True)

        with pytest.raises(OperationCancelled):
            await token.race(work())
        assert started == []

    @pytest.mark.asyncio
    async def test_wait(self):
        """Test awaiting the token."""
        token = CancellationToken()
        asyncio.get_running_loop().call_soon(token.cancel)

        await asyncio.wait_for(token.wait(), timeout=1)

        assert token.cancelled
