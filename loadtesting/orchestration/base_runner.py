"""Shared plumbing for the in-process runners."""

import asyncio
import logging
from typing import Collection, Dict, Iterable, List, Optional, Set

from ..core.clock import AsyncioClock, Clock
from ..core.config import RunnerConfig
from ..core.exceptions import ExecutionError, TestTimeoutError
from ..core.executor import RequestExecutor
from ..core.models import Duration, RequestSample, RequestSpec, RunResult
from ..core.statistics import summarize


class BaseRunner:
    """
    Common state for runners: the executor, the clock, settings and the
    cancellation event.

    Subclasses implement run(); everything here is about turning requests
    into samples and bounding how long in-flight work may take.
    """

    strategy = "in-process"

    def __init__(
        self,
        executor: RequestExecutor,
        clock: Optional[Clock] = None,
        config: Optional[RunnerConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.executor = executor
        self.clock = clock or AsyncioClock()
        self.config = config or RunnerConfig()
        self.cancel_event = cancel_event or asyncio.Event()

        logging.basicConfig(
            level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
        )
        self.logger = logging.getLogger(self.__class__.__module__)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        """Stop issuing new requests; in-flight requests still finish."""
        self.cancel_event.set()

    def resolve_duration(self, duration: Optional[Duration]) -> float:
        if duration is None:
            return float(self.config.default_duration_seconds)
        return duration.to_seconds()

    def ceiling_from(self, start: float) -> Optional[float]:
        limit = self.config.max_test_duration_seconds
        return start + limit if limit is not None else None

    async def execute_request(self, request: RequestSpec) -> RequestSample:
        """Execute one request; executor errors become failed samples."""
        timestamp = self.clock.now()
        try:
            outcome = await self.executor.execute(request)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = ExecutionError(
                f"Request to {request.url} failed: {str(e) or e.__class__.__name__}",
                {"url": request.url, "cause": e.__class__.__name__},
            )
            self.logger.warning(error.message)
            return RequestSample(
                timestamp=timestamp,
                latency_ms=(self.clock.now() - timestamp) * 1000,
                success=False,
                error=error.message,
            )

        return RequestSample(
            timestamp=timestamp,
            latency_ms=outcome.latency_ms,
            success=outcome.success,
            response_bytes=outcome.response_bytes,
            status_code=outcome.status_code,
            error=outcome.error,
        )

    async def wait_with_deadline(
        self, tasks: Collection[asyncio.Task], seconds: Optional[float]
    ) -> Set[asyncio.Task]:
        """
        Wait for tasks on the runner clock.

        Returns the tasks still pending once seconds have elapsed; None waits
        for everything.
        """
        pending = {t for t in tasks if not t.done()}
        if not pending:
            return set()
        if seconds is None:
            await asyncio.wait(pending)
            return set()

        timer = asyncio.ensure_future(self.clock.sleep(max(seconds, 0.0)))
        try:
            while pending and not timer.done():
                done, _ = await asyncio.wait(
                    pending | {timer}, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
        finally:
            timer.cancel()
        return pending

    async def stop_pending(self, pending: Set[asyncio.Task]) -> Set[asyncio.Task]:
        """
        Stop in-flight work after the duration ceiling.

        Waits up to drain_timeout_seconds (unless hard_timeout is set), then
        cancels what is left. Returns the cancelled tasks.
        """
        if not self.config.hard_timeout:
            pending = await self.wait_with_deadline(pending, self.config.drain_timeout_seconds)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return pending

    def straggler_samples(self, started: Iterable[float]) -> List[RequestSample]:
        """One failed sample per request cancelled at the ceiling."""
        limit = self.config.max_test_duration_seconds
        error = TestTimeoutError(f"Timed out: test exceeded {limit}s", timeout_seconds=limit)
        now = self.clock.now()
        samples = [
            RequestSample(
                timestamp=ts,
                latency_ms=(now - ts) * 1000,
                success=False,
                error=error.message,
            )
            for ts in sorted(started)
        ]
        if samples:
            self.logger.warning(
                f"Cancelled {len(samples)} in-flight request(s) at the duration ceiling"
            )
        return samples

    async def drain(
        self, pending: Set[asyncio.Task], started_at: Dict[asyncio.Task, float]
    ) -> List[RequestSample]:
        """Stop pending request tasks and report each one cancelled as a failed sample."""
        cancelled = await self.stop_pending(pending)
        now = self.clock.now()
        return self.straggler_samples(started_at.get(task, now) for task in cancelled)

    def build_result(
        self,
        test_id: str,
        status: str,
        samples: List[RequestSample],
        start: float,
        end: float,
        scheduled: int,
        error: Optional[str] = None,
    ) -> RunResult:
        return RunResult(
            test_id=test_id,
            strategy=self.strategy,
            status=status,
            metrics=summarize(samples, duration_seconds=max(end - start, 0.0)),
            start_time=start,
            end_time=end,
            scheduled_requests=scheduled,
            error=error,
            samples=samples,
        )
