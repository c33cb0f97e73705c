"""Shared test fixtures for the Faultline test suite."""

from typing import List

import httpx
import pytest

from faultline.core.handler import Handler
from faultline.infrastructure.environment import RuntimeEnvironment
from faultline.infrastructure.transport import ReportTransport
from faultline.shared.infrastructure.config import FaultlineSettings


class FakeClock:
    """Manually advanced clock for ledger windows."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_handler():
    """Every test starts without a process-wide handler."""
    Handler.reset_instance()
    yield
    Handler.reset_instance()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def requests() -> List[httpx.Request]:
    """Requests received by the mock transport."""
    return []


@pytest.fixture
def mock_transport(requests):
    def respond(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, text="ok")

    return httpx.MockTransport(respond)


@pytest.fixture
def make_handler(clock, mock_transport):
    """Build an isolated Handler with a fake clock and a mock transport."""

    def factory(structure_dumper=None, **settings) -> Handler:
        return Handler(
            FaultlineSettings(**settings),
            transport=ReportTransport(transport=mock_transport),
            environment=RuntimeEnvironment(
                location="python://tests",
                structure_dumper=structure_dumper or (lambda: "<structure>"),
            ),
            clock=clock,
        )

    return factory


@pytest.fixture
def handler(make_handler):
    return make_handler()
