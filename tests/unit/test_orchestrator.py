"""
Unit tests for the load test orchestrator
"""

import pytest

from loadtesting.core.exceptions import ValidationError
from loadtesting.core.models import (
    AggregatedMetrics,
    Assertion,
    Duration,
    LoadPattern,
    LoadTestSpec,
    RequestSpec,
    RunResult,
    WorkflowRequest,
    WorkflowStep,
)
from loadtesting.orchestration.orchestrator import LoadTestOrchestrator

from conftest import FakeExecutor, make_batch, make_item


class StubExternalRunner:
    """External runner that records the specs it was given."""

    def __init__(self, error=None):
        self.error = error
        self.specs = []

    async def run(self, spec):
        self.specs.append(spec)
        if self.error is not None:
            raise self.error
        return RunResult(
            test_id=spec.id,
            strategy="external-heavy-load-runner",
            status="completed",
            metrics=AggregatedMetrics(total_requests=50000, successful_requests=50000),
            start_time=0.0,
            end_time=600.0,
        )


def _spec(test_type="baseline", **kwargs):
    kwargs.setdefault("requests", [RequestSpec(url="/api")])
    return LoadTestSpec(
        id=kwargs.pop("id", "spec"),
        test_type=test_type,
        load_pattern=kwargs.pop("load_pattern", LoadPattern(virtual_users=2)),
        duration=kwargs.pop("duration", Duration(4)),
        **kwargs,
    )


class TestStrategyDispatch:
    """Test each strategy reaches its executor"""

    @pytest.mark.asyncio
    async def test_pattern_runner(self, fake_clock, fake_executor):
        """Test a light request spec runs in the pattern runner"""
        orchestrator = LoadTestOrchestrator(fake_executor, clock=fake_clock)

        report = await orchestrator.run(_spec())

        assert report.selection.strategy == "pattern-runner"
        assert report.run.strategy == "pattern-runner"
        assert report.status == "completed"
        assert report.metrics.total_requests == 2
        assert report.batch is None

    @pytest.mark.asyncio
    async def test_workflow(self, fake_clock, fake_executor):
        """Test a workflow spec runs in the workflow runner"""
        spec = _spec(
            requests=[],
            workflow=[WorkflowStep(steps=[WorkflowRequest(url="/login"), WorkflowRequest(url="/home")])],
        )
        orchestrator = LoadTestOrchestrator(fake_executor, clock=fake_clock)

        report = await orchestrator.run(spec)

        assert report.run.strategy == "workflow"
        assert report.metrics.total_requests == 4

    @pytest.mark.asyncio
    async def test_batch(self, fake_clock):
        """Test a batch spec goes to the batch scheduler and carries its warnings"""
        executor = FakeExecutor(clock=fake_clock, fail_urls={"b"})
        spec = _spec(batch=make_batch([make_item("a"), make_item("b")]))
        orchestrator = LoadTestOrchestrator(executor, clock=fake_clock)

        report = await orchestrator.run(spec)

        assert report.selection.strategy == "batch"
        assert report.run is None
        assert report.status == "partial"
        assert report.metrics.total_requests == 1
        assert any(w.startswith("Test b failed") for w in report.warnings)

    @pytest.mark.asyncio
    async def test_invalid_spec_raises(self, fake_clock, fake_executor):
        """Test validation errors propagate before anything runs"""
        orchestrator = LoadTestOrchestrator(fake_executor, clock=fake_clock)

        with pytest.raises(ValidationError):
            await orchestrator.run(_spec(requests=[]))
        assert fake_executor.calls == []


class TestHeavyRunner:
    """Test delegation to the external heavy load runner"""

    @pytest.mark.asyncio
    async def test_external_runner_used(self, fake_clock, fake_executor):
        """Test heavy specs are handed to the external runner"""
        external = StubExternalRunner()
        orchestrator = LoadTestOrchestrator(
            fake_executor, clock=fake_clock, external_runner=external
        )

        report = await orchestrator.run(_spec(test_type="stress"))

        assert report.selection.strategy == "external-heavy-load-runner"
        assert [s.id for s in external.specs] == ["spec"]
        assert report.metrics.total_requests == 50000
        assert fake_executor.calls == []

    @pytest.mark.asyncio
    async def test_fallback_without_external_runner(self, fake_clock, fake_executor):
        """Test heavy specs run in process with a warning when no runner is set"""
        orchestrator = LoadTestOrchestrator(fake_executor, clock=fake_clock)

        report = await orchestrator.run(_spec(test_type="endurance"))

        assert report.run.strategy == "pattern-runner"
        assert report.warnings[0].startswith("No external runner configured")
        assert len(fake_executor.calls) == 2

    @pytest.mark.asyncio
    async def test_fallback_when_external_runner_fails(self, fake_clock, fake_executor):
        """Test a failing external runner falls back to the in-process runner"""
        external = StubExternalRunner(error=RuntimeError("cluster unavailable"))
        orchestrator = LoadTestOrchestrator(
            fake_executor, clock=fake_clock, external_runner=external
        )

        report = await orchestrator.run(_spec(test_type="stress"))

        assert "cluster unavailable" in report.warnings[0]
        assert report.run.strategy == "pattern-runner"

    @pytest.mark.asyncio
    async def test_external_runner_reaches_batch_items(self, fake_clock, fake_executor):
        """Test heavy batch sub-tests use the orchestrator's external runner"""
        external = StubExternalRunner()
        spec = _spec(batch=make_batch([make_item("light"), make_item("heavy", virtual_users=80)]))
        orchestrator = LoadTestOrchestrator(
            fake_executor, clock=fake_clock, external_runner=external
        )

        report = await orchestrator.run(spec)

        assert report.selection.strategy == "batch"
        assert [s.id for s in external.specs] == ["heavy"]
        assert fake_executor.urls == ["light"]

    @pytest.mark.asyncio
    async def test_heavy_workflow_fallback(self, fake_clock, fake_executor):
        """Test a heavy workflow falls back to the workflow runner"""
        spec = _spec(
            test_type="stress",
            requests=[],
            workflow=[WorkflowStep(steps=[WorkflowRequest(url="/step")])],
        )
        orchestrator = LoadTestOrchestrator(fake_executor, clock=fake_clock)

        report = await orchestrator.run(spec)

        assert report.run.strategy == "workflow"


class TestAssertions:
    """Test spec level assertions"""

    @pytest.mark.asyncio
    async def test_assertions_evaluated(self, fake_clock, fake_executor):
        """Test assertions run against the run metrics"""
        spec = _spec(
            assertions=[
                Assertion("fast", "response_time", "less_than", 100),
                Assertion("busy", "throughput", "greater_than", 1000),
            ]
        )
        orchestrator = LoadTestOrchestrator(fake_executor, clock=fake_clock)

        report = await orchestrator.run(spec)

        assert [a.passed for a in report.assertions] == [True, False]
        assert not report.assertions_passed
        assert report.warnings == [
            f"Assertion 'busy' failed (expected greater_than 1000, "
            f"got {report.assertions[1].actual_value})"
        ]

    @pytest.mark.asyncio
    async def test_report_to_dict(self, fake_clock, fake_executor):
        """Test the report serialises its parts"""
        orchestrator = LoadTestOrchestrator(fake_executor, clock=fake_clock)

        data = (await orchestrator.run(_spec())).to_dict()

        assert data["status"] == "completed"
        assert data["selection"]["strategy"] == "pattern-runner"
        assert data["batch"] is None
        assert data["metrics"]["total_requests"] == 2


class TestCancellation:
    """Test orchestrator level cancellation"""

    @pytest.mark.asyncio
    async def test_cancel_before_run(self, fake_clock, fake_executor):
        """Test a cancelled orchestrator issues no requests"""
        orchestrator = LoadTestOrchestrator(fake_executor, clock=fake_clock)
        orchestrator.cancel()

        report = await orchestrator.run(_spec())

        assert report.status == "cancelled"
        assert fake_executor.calls == []
