"""In-process runner for multi-step workflows."""

import asyncio
from typing import Dict, List, Optional, Sequence, Union

from ..core.exceptions import ValidationError
from ..core.models import (
    Duration,
    LoadPattern,
    LoadTestSpec,
    RequestSample,
    RunResult,
    WorkflowRequest,
    WorkflowStep,
)
from ..core.selector import STRATEGY_WORKFLOW
from .base_runner import BaseRunner


class _Stop(Exception):
    """Raised inside a virtual user to stop issuing requests."""


class WorkflowRunner(BaseRunner):
    """
    Runs a workflow once per virtual user, all users concurrently.

    Each top-level step runs in order. A sequential step issues its children
    one after another; a parallel step issues them all at once. A request with
    request_count repeats that many times, and think_time pauses after a step.
    """

    strategy = STRATEGY_WORKFLOW

    async def run_spec(self, spec: LoadTestSpec) -> RunResult:
        return await self.run(spec.id, spec.workflow, spec.load_pattern, spec.duration)

    async def run(
        self,
        test_id: str,
        workflow: Sequence[WorkflowStep],
        load_pattern: Optional[LoadPattern] = None,
        duration: Optional[Duration] = None,
    ) -> RunResult:
        if not workflow:
            raise ValidationError(f"Test {test_id} declares no workflow", field_name="workflow")

        virtual_users = (load_pattern.virtual_users if load_pattern else None) or 1
        # Workflows run to completion; duration only bounds them through the ceiling
        self.logger.info("=" * 60)
        self.logger.info(
            f"Starting workflow {test_id}: {len(workflow)} steps x {virtual_users} virtual users"
        )
        if duration is not None:
            self.logger.info(f"  Declared duration: {duration.to_seconds():.0f}s")

        start = self.clock.now()
        self._ceiling = self.ceiling_from(start)
        self._timed_out = False
        self._in_flight: Dict[object, float] = {}
        samples: List[RequestSample] = []

        users = [
            asyncio.create_task(self._run_user(workflow, samples))
            for _ in range(virtual_users)
        ]

        remaining = None if self._ceiling is None else self._ceiling - self.clock.now()
        pending = await self.wait_with_deadline(users, remaining)
        stragglers: List[RequestSample] = []
        if pending:
            self._timed_out = True
            await self.stop_pending(pending)
            # Users cancelled between requests leave nothing behind
            stragglers = self.straggler_samples(self._in_flight.values())

        for task in users:
            if task.done() and not task.cancelled() and task.exception() is not None:
                raise task.exception()

        if self.cancelled:
            status = "cancelled"
        elif self._timed_out:
            status = "timed_out"
        else:
            status = "completed"

        end = self.clock.now()
        result = self.build_result(
            test_id,
            status,
            samples + stragglers,
            start,
            end,
            scheduled=self.count_requests(workflow) * virtual_users,
        )
        self.logger.info(
            f"Workflow {test_id} {status}: {result.metrics.successful_requests}/"
            f"{result.metrics.total_requests} succeeded"
        )
        return result

    @staticmethod
    def count_requests(steps: Sequence[Union[WorkflowStep, WorkflowRequest]]) -> int:
        """Requests one virtual user issues for the given steps."""
        total = 0
        for step in steps:
            if isinstance(step, WorkflowStep):
                total += WorkflowRunner.count_requests(step.steps)
            else:
                total += max(step.request_count or 1, 1)
        return total

    async def _run_user(self, workflow: Sequence[WorkflowStep], samples: List[RequestSample]) -> None:
        try:
            for step in workflow:
                await self._run_step(step, samples)
        except _Stop:
            return

    async def _run_step(self, step: WorkflowStep, samples: List[RequestSample]) -> None:
        if step.type == "parallel":
            results = await asyncio.gather(
                *[self._run_child(child, samples) for child in step.steps],
                return_exceptions=True,
            )
            for outcome in results:
                if isinstance(outcome, BaseException):
                    raise outcome
        else:
            for child in step.steps:
                await self._run_child(child, samples)

        if step.think_time is not None:
            await self.clock.sleep(step.think_time.to_seconds())

    async def _run_child(
        self, child: Union[WorkflowStep, WorkflowRequest], samples: List[RequestSample]
    ) -> None:
        if isinstance(child, WorkflowStep):
            await self._run_step(child, samples)
            return

        for _ in range(max(child.request_count or 1, 1)):
            self._check_stop()
            token = object()
            self._in_flight[token] = self.clock.now()
            sample = await self.execute_request(child)
            del self._in_flight[token]
            samples.append(sample)

    def _check_stop(self) -> None:
        if self.cancelled:
            raise _Stop()
        if self._ceiling is not None and self.clock.now() >= self._ceiling:
            self._timed_out = True
            raise _Stop()
