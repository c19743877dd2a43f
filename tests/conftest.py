"""
Pytest configuration and shared fixtures for load testing tests
"""
import asyncio
import time
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from loadtesting.core.executor import RequestOutcome
from loadtesting.core.models import (
    BatchTestItem,
    BatchTestSpec,
    Duration,
    ExecutionOptions,
    LoadPattern,
    RequestSpec,
)


class FakeClock:
    """
    Virtual clock: sleeping moves time forward instead of waiting.

    Time only moves forward; concurrent sleepers resume at the later of
    their own deadline and the current time.
    """

    def __init__(self, start: float = 0.0):
        self.current = start
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self.current

    async def sleep(self, seconds: float) -> None:
        seconds = max(seconds, 0.0)
        self.sleeps.append(seconds)
        deadline = self.current + seconds
        await asyncio.sleep(0)
        self.current = max(self.current, deadline)


class FakeExecutor:
    """Deterministic request executor driven by the URL of each request."""

    def __init__(
        self,
        clock: Optional[FakeClock] = None,
        latency_ms: float = 10.0,
        latencies: Optional[Dict[str, float]] = None,
        fail_urls: Iterable[str] = (),
        raise_urls: Iterable[str] = (),
        response_bytes: int = 100,
    ):
        self.clock = clock
        self.latency_ms = latency_ms
        self.latencies = latencies or {}
        self.fail_urls = set(fail_urls)
        self.raise_urls = set(raise_urls)
        self.response_bytes = response_bytes
        self.calls: List[Tuple[str, float]] = []

    async def execute(self, request: RequestSpec) -> RequestOutcome:
        self.calls.append((request.url, self.clock.now() if self.clock else 0.0))
        if request.url in self.raise_urls:
            raise RuntimeError(f"connection refused: {request.url}")

        latency = self.latencies.get(request.url, self.latency_ms)
        if self.clock is not None:
            await self.clock.sleep(latency / 1000)
        else:
            await asyncio.sleep(0)

        failed = request.url in self.fail_urls
        return RequestOutcome(
            success=not failed,
            latency_ms=latency,
            response_bytes=self.response_bytes,
            status_code=500 if failed else 200,
            error="HTTP 500" if failed else None,
        )

    @property
    def urls(self) -> List[str]:
        return [url for url, _ in self.calls]


class RecordingExecutor:
    """Real-time executor that records when each request starts and settles."""

    def __init__(self, delay: float = 0.02):
        self.delay = delay
        self.started: Dict[str, float] = {}
        self.settled: Dict[str, float] = {}

    async def execute(self, request: RequestSpec) -> RequestOutcome:
        self.started[request.url] = time.monotonic()
        await asyncio.sleep(self.delay)
        self.settled[request.url] = time.monotonic()
        return RequestOutcome(success=True, latency_ms=self.delay * 1000, response_bytes=10)


def make_item(
    test_id: str,
    url: Optional[str] = None,
    virtual_users: int = 1,
    duration_seconds: float = 0,
    **kwargs,
) -> BatchTestItem:
    """Batch item with one request that fires immediately."""
    return BatchTestItem(
        id=test_id,
        name=kwargs.pop("name", test_id),
        requests=[RequestSpec(url=url or test_id)],
        load_pattern=LoadPattern(virtual_users=virtual_users),
        duration=Duration(duration_seconds),
        **kwargs,
    )


def make_batch(
    items: List[BatchTestItem],
    execution_mode: str = "parallel",
    concurrency: Optional[int] = None,
    **options,
) -> BatchTestSpec:
    return BatchTestSpec(
        id="batch-1",
        name="Test batch",
        tests=items,
        execution_mode=execution_mode,
        execution_options=ExecutionOptions(parallel_concurrency=concurrency, **options),
    )


@pytest.fixture
def fake_clock():
    """Fresh virtual clock starting at zero"""
    return FakeClock()


@pytest.fixture
def fake_executor(fake_clock):
    """Deterministic executor using the virtual clock"""
    return FakeExecutor(clock=fake_clock)
