"""Shared test fixtures for the forwarder tests."""

import threading
from typing import List

import pytest

from forwarder.errors import SinkError
from forwarder.sinks import Sink


class MockSender:
    """Stands in for a ReliableSink and remembers every payload as lines."""

    def __init__(self):
        self.payloads: List[bytes] = []

    @property
    def content(self) -> List[str]:
        return self.payloads[-1].decode("utf-8").splitlines() if self.payloads else []

    def send(self, payload: bytes) -> int:
        self.payloads.append(payload)
        return len(payload)


class FlakySink(Sink):
    """Sink that fails a fixed number of times before accepting payloads."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = []
        self._lock = threading.Lock()

    def write(self, payload: bytes, partition_key: str) -> int:
        with self._lock:
            self.calls.append((payload, partition_key))
            if len(self.calls) <= self.failures:
                raise SinkError(f"attempt {len(self.calls)} failed")
        return len(payload)


@pytest.fixture
def sender():
    return MockSender()
