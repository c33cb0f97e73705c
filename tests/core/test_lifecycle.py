"""Tests for the asynchronous capture lifecycle."""

import asyncio

import pytest

from faultline.core.lifecycle import CaptureLifecycle, CaptureState


class TestCaptureLifecycle:
    """Pending to Complete, exactly once."""

    def test_starts_pending(self):
        """Test the initial state."""
        lifecycle = CaptureLifecycle()

        assert lifecycle.state is CaptureState.PENDING
        assert lifecycle.complete is False

    def test_continuations_run_on_completion_in_order(self):
        """Test that queued continuations run once, in registration order."""
        lifecycle = CaptureLifecycle()
        calls = []

        lifecycle.when_complete(lambda: calls.append("first"))
        lifecycle.when_complete(lambda: calls.append("second"))
        assert calls == []

        assert lifecycle.mark_complete() is True
        assert calls == ["first", "second"]

        assert lifecycle.mark_complete() is False
        assert calls == ["first", "second"]

    def test_continuation_after_completion_runs_immediately(self):
        """Test that late registrations are not queued."""
        lifecycle = CaptureLifecycle()
        lifecycle.mark_complete()
        calls = []

        lifecycle.when_complete(lambda: calls.append("late"))

        assert calls == ["late"]

    def test_reentrant_registration_runs_once(self):
        """Test that a continuation registering another one does not run twice."""
        lifecycle = CaptureLifecycle()
        calls = []

        def outer():
            calls.append("outer")
            lifecycle.when_complete(lambda: calls.append("inner"))

        lifecycle.when_complete(outer)
        lifecycle.mark_complete()

        assert calls == ["outer", "inner"]

    def test_failing_continuation_does_not_block_others(self):
        """Test that continuations are fault-isolated."""
        lifecycle = CaptureLifecycle()
        calls = []

        def broken():
            raise RuntimeError("boom")

        lifecycle.when_complete(broken)
        lifecycle.when_complete(lambda: calls.append("after"))
        lifecycle.mark_complete()

        assert calls == ["after"]
        assert lifecycle.complete

    @pytest.mark.asyncio
    async def test_wait_resumes_on_completion(self):
        """Test that wait() suspends until the transition."""
        lifecycle = CaptureLifecycle()
        asyncio.get_running_loop().call_later(0.01, lifecycle.mark_complete)

        await asyncio.wait_for(lifecycle.wait(), timeout=1)

        assert lifecycle.state is CaptureState.COMPLETE

    @pytest.mark.asyncio
    async def test_wait_when_already_complete(self):
        """Test that wait() returns at once after completion."""
        lifecycle = CaptureLifecycle()
        lifecycle.mark_complete()

        await asyncio.wait_for(lifecycle.wait(), timeout=1)
