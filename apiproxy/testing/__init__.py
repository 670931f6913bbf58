"""Testing utilities for in-process forwarding simulations."""

from .fake_upstream import FakeUpstream, ReceivedRequest, UpstreamResponse
from .recording import FailingSink, RecordingSink, build_request

__all__ = [
    "FailingSink",
    "FakeUpstream",
    "ReceivedRequest",
    "RecordingSink",
    "UpstreamResponse",
    "build_request",
]
