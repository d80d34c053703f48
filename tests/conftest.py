"""Shared fixtures for tiercache tests."""

import pytest


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingFetcher:
    """Async fetcher returning canned results and counting calls."""

    def __init__(self, documents=None, error=None):
        self.documents = documents or {}
        self.error = error
        self.calls = []

    async def __call__(self, doc_id):
        self.calls.append(doc_id)
        if self.error is not None:
            raise self.error
        if doc_id in self.documents:
            return {"exists": True, "data": self.documents[doc_id]}
        return {"exists": False, "data": None}


@pytest.fixture
def clock():
    return FakeClock()
