"""In-process runner that dispatches requests on a pattern schedule."""

import asyncio
from typing import Dict, List, Optional, Sequence

from ..core.clock import sleep_until
from ..core.exceptions import ValidationError
from ..core.models import (
    Duration,
    LoadPattern,
    LoadTestSpec,
    RequestSample,
    RequestSpec,
    RunResult,
)
from ..core.pattern_scheduler import build_schedule
from ..core.selector import STRATEGY_PATTERN
from .base_runner import BaseRunner


def planned_requests(requests: Sequence[RequestSpec], pattern: Optional[LoadPattern]) -> int:
    """Every declared request once per virtual user."""
    virtual_users = (pattern.virtual_users if pattern else None) or 1
    return len(requests) * virtual_users


class PatternRunner(BaseRunner):
    """
    Load runner for plain request lists.

    Builds the dispatch schedule for the load pattern, then fires one task per
    scheduled request at its offset, cycling through the declared requests.
    """

    strategy = STRATEGY_PATTERN

    async def run_spec(self, spec: LoadTestSpec) -> RunResult:
        return await self.run(spec.id, spec.requests, spec.load_pattern, spec.duration)

    async def run(
        self,
        test_id: str,
        requests: Sequence[RequestSpec],
        load_pattern: Optional[LoadPattern] = None,
        duration: Optional[Duration] = None,
    ) -> RunResult:
        """Run every scheduled request and return the aggregated result."""
        if not requests:
            raise ValidationError(f"Test {test_id} declares no requests", field_name="requests")

        pattern = load_pattern or LoadPattern()
        seconds = self.resolve_duration(duration)
        schedule = build_schedule(
            pattern, planned_requests(requests, pattern), seconds, self.config.scheduler
        )

        self.logger.info("=" * 60)
        self.logger.info(f"Starting {pattern.type} run for {test_id}:")
        self.logger.info(f"  Total requests: {schedule.total}")
        self.logger.info(f"  Schedule length: {schedule.duration:.2f}s")
        for phase in schedule.phases:
            self.logger.info(
                f"  Phase {phase.name}: {phase.request_count} requests from "
                f"{phase.start_offset:.2f}s"
            )

        start = self.clock.now()
        ceiling = self.ceiling_from(start)
        status = "completed"
        tasks: List[asyncio.Task] = []
        started_at: Dict[asyncio.Task, float] = {}

        for i, offset in enumerate(schedule.offsets):
            if self.cancelled:
                status = "cancelled"
                break
            if ceiling is not None and start + offset > ceiling:
                status = "timed_out"
                break

            await sleep_until(self.clock, start + offset)
            if self.cancelled:
                status = "cancelled"
                break

            request = requests[i % len(requests)]
            task = asyncio.create_task(self.execute_request(request))
            started_at[task] = self.clock.now()
            tasks.append(task)

            every = self.config.progress_log_every
            if every and (i + 1) % every == 0:
                elapsed = self.clock.now() - start
                self.logger.info(
                    f"Sent {i + 1}/{schedule.total} requests ({elapsed:.1f}s elapsed)"
                )

        if status == "cancelled":
            self.logger.warning(
                f"Run {test_id} cancelled after {len(tasks)}/{schedule.total} requests"
            )

        self.logger.info("Waiting for in-flight requests to complete...")
        remaining = None if ceiling is None else ceiling - self.clock.now()
        pending = await self.wait_with_deadline(tasks, remaining)

        stragglers: List[RequestSample] = []
        if pending:
            status = "timed_out"
            stragglers = await self.drain(pending, started_at)

        samples = [
            task.result() for task in tasks if task.done() and not task.cancelled()
        ] + stragglers
        end = self.clock.now()

        if status == "timed_out":
            self.logger.warning(
                f"Run {test_id} hit the {self.config.max_test_duration_seconds}s ceiling "
                f"after {len(tasks)}/{schedule.total} requests"
            )

        result = self.build_result(
            test_id, status, samples, start, end, scheduled=schedule.total
        )
        self.logger.info(
            f"Finished {test_id}: {result.metrics.successful_requests}/"
            f"{result.metrics.total_requests} succeeded in {result.duration_seconds:.2f}s"
        )
        return result
