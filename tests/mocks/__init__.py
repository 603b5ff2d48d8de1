"""Mock implementations for testing."""

from tests.mocks.clock import FakeClock
from tests.mocks.tokens import TEST_SECRET, make_token
from tests.mocks.upstream import FakeUpstreamClient
from tests.mocks.websocket import FakeTransport


__all__ = [
    "FakeClock",
    "FakeTransport",
    "FakeUpstreamClient",
    "TEST_SECRET",
    "make_token",
]
