"""Batch execution: chunked parallel or ordered sequential sub-tests with retries."""

import asyncio
import copy
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.assertions import run_assertions
from ..core.clock import AsyncioClock, Clock
from ..core.config import BatchConfig
from ..core.exceptions import RetryExhaustedError
from ..core.executor import ExternalRunner, RequestExecutor
from ..core.models import (
    AggregatedMetrics,
    BatchExecutionResult,
    BatchTestItem,
    BatchTestResult,
    BatchTestSpec,
    Duration,
    LoadPattern,
    LoadTestSpec,
    RequestSample,
    RunResult,
    ThroughputMetrics,
)
from ..core.statistics import percentiles
from .dependencies import dependency_waves, execution_order
from .pattern_runner import PatternRunner
from .workflow_runner import WorkflowRunner


def chunk(items: Sequence, size: int) -> List[List]:
    """Split items into consecutive chunks of at most size."""
    size = max(int(size), 1)
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def aggregate_results(
    results: Sequence[BatchTestResult], raw_samples: bool = False
) -> AggregatedMetrics:
    """
    Combine completed sub-test metrics into one batch summary.

    Totals are summed and the average latency is weighted by request count.
    By default the percentile fields describe the distribution of per-test
    average latencies, which understates tail latency when a batch has few
    long sub-tests; raw_samples=True pools the raw samples instead.
    Throughput is total requests over the summed sub-test durations.
    """
    completed = [r for r in results if r.status == "completed"]
    if not completed:
        return AggregatedMetrics()

    total = sum(r.metrics.total_requests for r in completed)
    successful = sum(r.metrics.successful_requests for r in completed)
    failed = total - successful
    total_duration = sum(r.duration_seconds for r in completed)

    if raw_samples:
        pooled: List[RequestSample] = [s for r in completed for s in r.samples]
        response_time = percentiles(s.latency_ms for s in pooled)
    else:
        averages = [r.metrics.response_time.avg for r in completed if r.metrics.response_time.avg > 0]
        response_time = percentiles(averages)
        if total > 0:
            response_time.avg = (
                sum(r.metrics.response_time.avg * r.metrics.total_requests for r in completed)
                / total
            )

    return AggregatedMetrics(
        total_requests=total,
        successful_requests=successful,
        failed_requests=failed,
        response_time=response_time,
        throughput=ThroughputMetrics(
            requests_per_second=total / total_duration if total_duration > 0 else 0.0,
            bytes_per_second=(
                sum(r.metrics.throughput.bytes_per_second * r.duration_seconds for r in completed)
                / total_duration
                if total_duration > 0
                else 0.0
            ),
        ),
        error_rate=failed / total if total else 0.0,
        total_duration_seconds=total_duration,
    )


class BatchScheduler:
    """
    Executes the sub-tests of a batch.

    Parallel mode launches each chunk of sub-tests together and waits for the
    whole chunk to settle before starting the next. Sequential mode runs one
    sub-test at a time in execution order with an optional delay in between.
    A failing sub-test never stops its siblings.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        clock: Optional[Clock] = None,
        config: Optional[BatchConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
        external_runner: Optional[ExternalRunner] = None,
    ):
        self.executor = executor
        self.clock = clock or AsyncioClock()
        self.config = config or BatchConfig()
        self.cancel_event = cancel_event or asyncio.Event()
        self.external_runner = external_runner

        logging.basicConfig(
            level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
        )
        self.logger = logging.getLogger(__name__)

    def cancel(self) -> None:
        """Stop launching new sub-tests; running attempts finish."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def resolve_item(
        self, item: BatchTestItem, batch_spec: BatchTestSpec
    ) -> Tuple[LoadPattern, Optional[Duration]]:
        """Private copies of the pattern and duration a sub-test runs with."""
        pattern = item.load_pattern or batch_spec.global_load_pattern
        duration = item.duration or batch_spec.global_duration
        pattern = copy.deepcopy(pattern) if pattern else LoadPattern(virtual_users=1)
        return pattern, copy.deepcopy(duration)

    def max_retries(self, item: BatchTestItem, batch_spec: BatchTestSpec) -> int:
        options = batch_spec.execution_options
        if not options.retry_failed_tests:
            return 0
        retries = item.retries if item.retries is not None else options.max_retries
        return max(int(retries or 0), 0)

    def retry_delay_seconds(self, attempt: int, batch_spec: BatchTestSpec) -> float:
        """Delay before retry number attempt (1-based), growing linearly."""
        base_ms = batch_spec.execution_options.retry_base_delay_ms
        if base_ms is None:
            base_ms = self.config.retry_base_delay_ms
        return base_ms * attempt / 1000

    def is_heavy(self, pattern: LoadPattern) -> bool:
        return (pattern.virtual_users or 0) > self.config.heavy_virtual_users

    @staticmethod
    def _item_spec(
        item: BatchTestItem, pattern: LoadPattern, duration: Optional[Duration]
    ) -> LoadTestSpec:
        return LoadTestSpec(
            id=item.id,
            test_type=item.test_type,
            name=item.name,
            description=item.description,
            requests=list(item.requests),
            load_pattern=pattern,
            duration=duration,
        )

    async def _attempt(
        self, item: BatchTestItem, pattern: LoadPattern, duration: Optional[Duration]
    ) -> RunResult:
        if item.workflow:
            runner = WorkflowRunner(self.executor, self.clock, self.config.runner, self.cancel_event)
            return await runner.run(item.id, item.workflow, pattern, duration)
        if self.external_runner is not None and self.is_heavy(pattern):
            self.logger.info(f"Delegating {item.id} to the external runner")
            return await self.external_runner.run(self._item_spec(item, pattern, duration))
        runner = PatternRunner(self.executor, self.clock, self.config.runner, self.cancel_event)
        return await runner.run(item.id, item.requests, pattern, duration)

    def _total_failure(self, run: RunResult) -> Optional[str]:
        """Error message when every request of an attempt failed."""
        metrics = run.metrics
        if not self.config.fail_on_total_error:
            return None
        if metrics.total_requests == 0 or metrics.successful_requests > 0:
            return None
        first_error = next((s.error for s in run.samples if s.error), None)
        message = f"All {metrics.total_requests} requests failed"
        return f"{message} ({first_error})" if first_error else message

    async def run_item(self, item: BatchTestItem, batch_spec: BatchTestSpec) -> BatchTestResult:
        """Run one sub-test with retries; never raises for sub-test failures."""
        name = item.name or item.id
        self.logger.info(f"Executing test: {name} ({item.test_type})")

        pattern, duration = self.resolve_item(item, batch_spec)
        max_retries = self.max_retries(item, batch_spec)
        start = self.clock.now()
        retry_count = 0
        last_error = "Unknown error"
        last_run: Optional[RunResult] = None

        while True:
            try:
                run = await self._attempt(item, pattern, duration)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                run = None
                last_error = str(e) or e.__class__.__name__

            if run is not None:
                last_run = run
                failure = self._total_failure(run)
                if failure is None:
                    return BatchTestResult(
                        test_id=item.id,
                        test_name=name,
                        status="completed",
                        start_time=start,
                        end_time=self.clock.now(),
                        metrics=run.metrics,
                        retry_count=retry_count,
                        assertions=run_assertions(item.assertions, run.metrics),
                        samples=run.samples,
                    )
                last_error = failure

            self.logger.warning(f"Test {name} attempt {retry_count + 1} failed: {last_error}")
            if retry_count >= max_retries or self.cancelled:
                break
            retry_count += 1
            delay = self.retry_delay_seconds(retry_count, batch_spec)
            self.logger.info(
                f"Retrying test {name} (attempt {retry_count}/{max_retries}) in {delay:.1f}s"
            )
            await self.clock.sleep(delay)

        error = RetryExhaustedError(item.id, retry_count + 1, last_error)
        self.logger.error(error.message)
        return BatchTestResult(
            test_id=item.id,
            test_name=name,
            status="failed",
            start_time=start,
            end_time=self.clock.now(),
            metrics=last_run.metrics if last_run else AggregatedMetrics(),
            error=error.message,
            retry_count=retry_count,
        )

    def _skipped(self, item: BatchTestItem, reason: str) -> BatchTestResult:
        now = self.clock.now()
        self.logger.warning(f"Skipping test {item.name or item.id}: {reason}")
        return BatchTestResult(
            test_id=item.id,
            test_name=item.name or item.id,
            status="skipped",
            start_time=now,
            end_time=now,
            error=reason,
        )

    def _blocked_by(self, item: BatchTestItem, finished: Dict[str, BatchTestResult]) -> Optional[str]:
        for dependency in item.dependencies:
            result = finished.get(dependency)
            if result is None or result.status != "completed":
                return f"Dependency {dependency} did not complete"
        return None

    async def _run_or_skip(
        self,
        item: BatchTestItem,
        batch_spec: BatchTestSpec,
        finished: Dict[str, BatchTestResult],
    ) -> BatchTestResult:
        reason = self._blocked_by(item, finished)
        if reason:
            return self._skipped(item, reason)
        return await self.run_item(item, batch_spec)

    def _failed_launch(self, item: BatchTestItem, error: BaseException) -> BatchTestResult:
        now = self.clock.now()
        return BatchTestResult(
            test_id=item.id,
            test_name=item.name or item.id,
            status="failed",
            start_time=now,
            end_time=now,
            error=str(error) or error.__class__.__name__,
        )

    async def _run_parallel(
        self,
        batch_spec: BatchTestSpec,
        results: List[BatchTestResult],
        finished: Dict[str, BatchTestResult],
    ) -> None:
        concurrency = (
            self.config.concurrency
            or batch_spec.execution_options.parallel_concurrency
            or len(batch_spec.tests)
        )
        self.logger.info(f"Parallel execution with concurrency: {concurrency}")

        for wave in dependency_waves(batch_spec.tests):
            for index, group in enumerate(chunk(wave, concurrency)):
                if self.cancelled:
                    return
                self.logger.info(
                    f"Launching chunk {index + 1} ({len(group)} tests): "
                    f"{', '.join(item.id for item in group)}"
                )
                settled = await asyncio.gather(
                    *[self._run_or_skip(item, batch_spec, finished) for item in group],
                    return_exceptions=True,
                )
                for item, outcome in zip(group, settled):
                    if isinstance(outcome, asyncio.CancelledError):
                        raise outcome
                    if isinstance(outcome, BaseException):
                        self.logger.error(f"Test {item.id} failed to launch: {outcome}")
                        outcome = self._failed_launch(item, outcome)
                    results.append(outcome)
                    finished[item.id] = outcome

    async def _run_sequential(
        self,
        batch_spec: BatchTestSpec,
        results: List[BatchTestResult],
        finished: Dict[str, BatchTestResult],
    ) -> None:
        delay = batch_spec.execution_options.sequential_delay
        delay_seconds = delay.to_seconds() if delay else 0.0
        self.logger.info(
            f"Sequential execution with {'delays' if delay_seconds > 0 else 'no delays'}"
        )

        ordered = execution_order(batch_spec.tests)
        for position, item in enumerate(ordered):
            if self.cancelled:
                return
            try:
                outcome = await self._run_or_skip(item, batch_spec, finished)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(f"Test {item.id} failed to launch: {e}")
                outcome = self._failed_launch(item, e)
            results.append(outcome)
            finished[item.id] = outcome

            if delay_seconds > 0 and position < len(ordered) - 1:
                self.logger.info(f"Waiting {delay_seconds:.1f}s before next test...")
                await self.clock.sleep(delay_seconds)

    async def execute_batch(self, batch_spec: BatchTestSpec) -> BatchExecutionResult:
        """
        Run every sub-test of a batch and aggregate the outcome.

        Raises:
            ValidationError: If the batch or its dependencies are malformed
        """
        batch_spec.validate()
        execution_order(batch_spec.tests)

        start_datetime = datetime.now()
        start = self.clock.now()
        self.logger.info("=" * 60)
        self.logger.info(f"Starting batch execution: {batch_spec.name or batch_spec.id}")
        self.logger.info(
            f"Mode: {batch_spec.execution_mode}, Tests: {len(batch_spec.tests)}"
        )
        self.logger.info("=" * 60)

        results: List[BatchTestResult] = []
        finished: Dict[str, BatchTestResult] = {}
        error: Optional[str] = None

        try:
            if batch_spec.execution_mode == "parallel":
                await self._run_parallel(batch_spec, results, finished)
            else:
                await self._run_sequential(batch_spec, results, finished)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = str(e) or e.__class__.__name__
            self.logger.error(f"Batch {batch_spec.id} failed: {error}")

        cancelled = self.cancelled and error is None
        for item in batch_spec.tests:
            if item.id not in finished:
                reason = "Batch cancelled" if cancelled else "Not run"
                skipped = self._skipped(item, reason)
                results.append(skipped)
                finished[item.id] = skipped

        return self._build_result(batch_spec, results, start, start_datetime, error, cancelled)

    def _build_result(
        self,
        batch_spec: BatchTestSpec,
        results: List[BatchTestResult],
        start: float,
        start_datetime: datetime,
        error: Optional[str],
        cancelled: bool,
    ) -> BatchExecutionResult:
        total_tests = len(batch_spec.tests)
        successful = sum(1 for r in results if r.status == "completed")
        failed = total_tests - successful

        if error is not None:
            status = "failed"
        elif cancelled:
            status = "cancelled"
        elif failed == 0:
            status = "completed"
        elif successful == 0:
            status = "failed"
        else:
            status = "partial"

        warnings = []
        for r in results:
            if r.status == "failed":
                warnings.append(f"Test {r.test_id} failed: {r.error}")
            elif r.status == "skipped":
                warnings.append(f"Test {r.test_id} skipped: {r.error}")
            for assertion in r.assertions:
                if not assertion.passed:
                    warnings.append(
                        f"Test {r.test_id} assertion '{assertion.name}' failed "
                        f"(expected {assertion.condition} {assertion.expected_value}, "
                        f"got {assertion.actual_value})"
                    )

        duration = max(self.clock.now() - start, 0.0)
        self.logger.info(
            f"Batch {batch_spec.id} {status}: {successful}/{total_tests} tests completed "
            f"in {duration:.2f}s"
        )
        return BatchExecutionResult(
            batch_id=batch_spec.id,
            status=status,
            execution_mode=batch_spec.execution_mode,
            start_timestamp=start_datetime,
            end_timestamp=datetime.now(),
            duration_seconds=duration,
            total_tests=total_tests,
            successful_tests=successful,
            failed_tests=failed,
            results=results,
            aggregated_metrics=aggregate_results(results, self.config.aggregate_raw_samples),
            warnings=warnings,
            error=error,
        )


async def execute_batch(
    batch_spec: BatchTestSpec,
    executor: RequestExecutor,
    clock: Optional[Clock] = None,
    config: Optional[BatchConfig] = None,
    external_runner: Optional[ExternalRunner] = None,
) -> BatchExecutionResult:
    """Run a batch with a one-off scheduler."""
    scheduler = BatchScheduler(executor, clock, config, external_runner=external_runner)
    return await scheduler.execute_batch(batch_spec)
