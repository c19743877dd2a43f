"""Top level entry: select a strategy for a spec and run it."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.assertions import run_assertions
from ..core.clock import AsyncioClock, Clock
from ..core.config import BatchConfig, SelectorConfig
from ..core.executor import ExternalRunner, RequestExecutor
from ..core.models import (
    AggregatedMetrics,
    AssertionResult,
    BatchExecutionResult,
    ExecutorSelectionResult,
    LoadTestSpec,
    RunResult,
)
from ..core.selector import (
    STRATEGY_BATCH,
    STRATEGY_HEAVY,
    STRATEGY_WORKFLOW,
    select_executor,
)
from .batch_scheduler import BatchScheduler
from .pattern_runner import PatternRunner
from .workflow_runner import WorkflowRunner


@dataclass
class LoadTestReport:
    """Everything produced by one orchestrated run."""

    spec_id: str
    selection: ExecutorSelectionResult
    run: Optional[RunResult] = None
    batch: Optional[BatchExecutionResult] = None
    assertions: List[AssertionResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def metrics(self) -> AggregatedMetrics:
        if self.batch is not None:
            return self.batch.aggregated_metrics
        if self.run is not None:
            return self.run.metrics
        return AggregatedMetrics()

    @property
    def status(self) -> str:
        if self.batch is not None:
            return self.batch.status
        if self.run is not None:
            return self.run.status
        return "failed"

    @property
    def assertions_passed(self) -> bool:
        batch_assertions = [
            a for r in (self.batch.results if self.batch else []) for a in r.assertions
        ]
        return all(a.passed for a in self.assertions + batch_assertions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "spec_id": self.spec_id,
            "status": self.status,
            "selection": self.selection.to_dict(),
            "run": self.run.to_dict() if self.run else None,
            "batch": self.batch.to_dict() if self.batch else None,
            "metrics": self.metrics.to_dict(),
            "assertions": [a.to_dict() for a in self.assertions],
            "warnings": self.warnings,
        }


class LoadTestOrchestrator:
    """
    Runs a load test spec end to end.

    The selector decides the strategy; batches go to the batch scheduler,
    workflows to the workflow runner and plain request lists to the pattern
    runner. Heavy tests are handed to the external runner when one is
    configured, falling back to the in-process runners otherwise.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        clock: Optional[Clock] = None,
        external_runner: Optional[ExternalRunner] = None,
        selector_config: Optional[SelectorConfig] = None,
        batch_config: Optional[BatchConfig] = None,
    ):
        self.executor = executor
        self.clock = clock or AsyncioClock()
        self.external_runner = external_runner
        self.selector_config = selector_config or SelectorConfig()
        self.batch_config = batch_config or BatchConfig()
        self.cancel_event = asyncio.Event()

        logging.basicConfig(
            level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
        )
        self.logger = logging.getLogger(__name__)

    def cancel(self) -> None:
        """Stop launching new work; in-flight requests and attempts finish."""
        self.cancel_event.set()

    def _in_process_runner(self, spec: LoadTestSpec):
        runner_cls = WorkflowRunner if spec.workflow else PatternRunner
        return runner_cls(self.executor, self.clock, self.batch_config.runner, self.cancel_event)

    async def _run_heavy(self, spec: LoadTestSpec, report: LoadTestReport) -> RunResult:
        if self.external_runner is None:
            message = "No external runner configured; running heavy test in process"
            self.logger.warning(message)
            report.warnings.append(message)
        else:
            try:
                return await self.external_runner.run(spec)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                message = f"External runner failed ({e}); falling back to in-process runner"
                self.logger.warning(message)
                report.warnings.append(message)
        return await self._in_process_runner(spec).run_spec(spec)

    async def run(self, spec: LoadTestSpec) -> LoadTestReport:
        """
        Select a strategy, execute and evaluate assertions.

        Raises:
            ValidationError: If the spec is malformed
        """
        selection = select_executor(spec, self.selector_config)
        report = LoadTestReport(spec_id=spec.id, selection=selection)

        self.logger.info("=" * 60)
        self.logger.info(f"Running {spec.name or spec.id} with {selection.strategy}")
        self.logger.info(f"  Reason: {selection.reason}")
        self.logger.info("=" * 60)

        if selection.strategy == STRATEGY_BATCH:
            scheduler = BatchScheduler(
                self.executor,
                self.clock,
                self.batch_config,
                self.cancel_event,
                external_runner=self.external_runner,
            )
            report.batch = await scheduler.execute_batch(spec.batch)
            report.warnings.extend(report.batch.warnings)
        elif selection.strategy == STRATEGY_HEAVY:
            report.run = await self._run_heavy(spec, report)
        elif selection.strategy == STRATEGY_WORKFLOW:
            report.run = await WorkflowRunner(
                self.executor, self.clock, self.batch_config.runner, self.cancel_event
            ).run_spec(spec)
        else:
            report.run = await PatternRunner(
                self.executor, self.clock, self.batch_config.runner, self.cancel_event
            ).run_spec(spec)

        report.assertions = run_assertions(spec.assertions, report.metrics)
        for result in report.assertions:
            if not result.passed:
                report.warnings.append(
                    f"Assertion '{result.name}' failed (expected {result.condition} "
                    f"{result.expected_value}, got {result.actual_value})"
                )

        self.logger.info(f"Run {spec.id} finished with status {report.status}")
        return report
