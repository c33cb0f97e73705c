"""Pending → Complete lifecycle for asynchronous capture."""

import asyncio
from collections import deque
from enum import Enum
from typing import Callable, Deque

from faultline.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CaptureState(Enum):
    """Asynchronous capture states."""

    PENDING = "pending"
    COMPLETE = "complete"


class CaptureLifecycle:
    """
    Two-state capture lifecycle with a queue of continuations.

    The state moves from PENDING to COMPLETE exactly once. Continuations
    registered while pending run once, in registration order, on that
    transition; continuations registered afterwards run immediately.
    """

    def __init__(self) -> None:
        self._state = CaptureState.PENDING
        self._continuations: Deque[Callable[[], None]] = deque()

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def complete(self) -> bool:
        return self._state is CaptureState.COMPLETE

    def when_complete(self, continuation: Callable[[], None]) -> None:
        """Run ``continuation`` now if complete, otherwise on completion."""
        if self.complete:
            self._run(continuation)
        else:
            self._continuations.append(continuation)

    def mark_complete(self) -> bool:
        """
        Transition to COMPLETE and drain queued continuations.

        Returns:
            True on the transition, False if already complete
        """
        if self.complete:
            return False
        self._state = CaptureState.COMPLETE
        # popleft so a continuation that re-enters when_complete cannot run twice
        while self._continuations:
            self._run(self._continuations.popleft())
        return True

    async def wait(self) -> None:
        """Suspend until the lifecycle is complete."""
        if self.complete:
            return
        future = asyncio.get_running_loop().create_future()

        def resolve() -> None:
            if not future.done():
                future.set_result(None)

        self.when_complete(resolve)
        await future

    @staticmethod
    def _run(continuation: Callable[[], None]) -> None:
        try:
            continuation()
        except Exception as e:
            logger.error(
                "capture_continuation_failed",
                continuation=getattr(continuation, "__qualname__", repr(continuation)),
                error=str(e),
                error_type=type(e).__name__,
            )
