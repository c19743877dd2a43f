"""
Unit tests for the workflow runner
"""

import asyncio

import pytest

from loadtesting.core.clock import AsyncioClock
from loadtesting.core.config import RunnerConfig
from loadtesting.core.exceptions import ValidationError
from loadtesting.core.models import (
    Duration,
    LoadPattern,
    LoadTestSpec,
    WorkflowRequest,
    WorkflowStep,
)
from loadtesting.orchestration.workflow_runner import WorkflowRunner

from conftest import FakeExecutor, RecordingExecutor


def _requests(*urls, **kwargs):
    return [WorkflowRequest(url=url, **kwargs) for url in urls]


class TestStepOrdering:
    """Test sequential and parallel steps"""

    @pytest.mark.asyncio
    async def test_sequential_children_run_in_order(self, fake_clock, fake_executor):
        """Test each child waits for the previous one"""
        runner = WorkflowRunner(fake_executor, clock=fake_clock)
        workflow = [WorkflowStep(steps=_requests("/login", "/profile", "/logout"))]

        result = await runner.run("journey", workflow)

        assert fake_executor.urls == ["/login", "/profile", "/logout"]
        assert [at for _, at in fake_executor.calls] == pytest.approx([0.0, 0.01, 0.02])
        assert result.status == "completed"
        assert result.metrics.total_requests == 3

    @pytest.mark.asyncio
    async def test_parallel_children_start_together(self, fake_clock, fake_executor):
        """Test a parallel step issues every child at once"""
        runner = WorkflowRunner(fake_executor, clock=fake_clock)
        workflow = [WorkflowStep(type="parallel", steps=_requests("/feed", "/inbox", "/ads"))]

        await runner.run("fanout", workflow)

        assert sorted(fake_executor.urls) == ["/ads", "/feed", "/inbox"]
        assert all(at == 0.0 for _, at in fake_executor.calls)

    @pytest.mark.asyncio
    async def test_nested_steps(self, fake_clock, fake_executor):
        """Test a parallel group inside a sequential step"""
        runner = WorkflowRunner(fake_executor, clock=fake_clock)
        workflow = [
            WorkflowStep(
                steps=[
                    WorkflowRequest(url="/login"),
                    WorkflowStep(type="parallel", steps=_requests("/a", "/b")),
                    WorkflowRequest(url="/logout"),
                ]
            )
        ]

        await runner.run("nested", workflow)

        assert fake_executor.urls[0] == "/login"
        assert sorted(fake_executor.urls[1:3]) == ["/a", "/b"]
        assert fake_executor.urls[3] == "/logout"

    @pytest.mark.asyncio
    async def test_request_count_repeats(self, fake_clock, fake_executor):
        """Test request_count issues the request that many times"""
        runner = WorkflowRunner(fake_executor, clock=fake_clock)
        workflow = [WorkflowStep(steps=[WorkflowRequest(url="/poll", request_count=4)])]

        result = await runner.run("poll", workflow)

        assert fake_executor.urls == ["/poll"] * 4
        assert result.scheduled_requests == 4

    @pytest.mark.asyncio
    async def test_think_time_between_steps(self, fake_clock, fake_executor):
        """Test think time pauses before the next step"""
        runner = WorkflowRunner(fake_executor, clock=fake_clock)
        workflow = [
            WorkflowStep(steps=_requests("/browse"), think_time=Duration(2)),
            WorkflowStep(steps=_requests("/buy")),
        ]

        await runner.run("think", workflow)

        assert fake_executor.calls[1] == ("/buy", pytest.approx(2.01))
        assert 2 in fake_clock.sleeps


class TestVirtualUsers:
    """Test the workflow runs once per virtual user"""

    @pytest.mark.asyncio
    async def test_each_user_runs_the_workflow(self, fake_clock, fake_executor):
        """Test three users issue three copies of every request"""
        runner = WorkflowRunner(fake_executor, clock=fake_clock)
        workflow = [WorkflowStep(steps=_requests("/a", "/b"))]

        result = await runner.run("users", workflow, LoadPattern(virtual_users=3))

        assert fake_executor.urls.count("/a") == 3
        assert fake_executor.urls.count("/b") == 3
        assert result.scheduled_requests == 6
        assert result.metrics.total_requests == 6

    @pytest.mark.asyncio
    async def test_run_spec(self, fake_clock, fake_executor):
        """Test a workflow spec runs under the workflow strategy"""
        spec = LoadTestSpec(
            id="wf",
            workflow=[WorkflowStep(steps=_requests("/x"))],
            load_pattern=LoadPattern(virtual_users=2),
        )
        runner = WorkflowRunner(fake_executor, clock=fake_clock)

        result = await runner.run_spec(spec)

        assert result.strategy == "workflow"
        assert len(fake_executor.calls) == 2

    def test_count_requests(self):
        """Test nested steps and repeats are all counted"""
        steps = [
            WorkflowStep(
                steps=[
                    WorkflowRequest(url="/a", request_count=3),
                    WorkflowStep(type="parallel", steps=_requests("/b", "/c")),
                ]
            ),
            WorkflowStep(steps=[WorkflowRequest(url="/d", request_count=0)]),
        ]

        assert WorkflowRunner.count_requests(steps) == 6


class TestFailuresAndStopping:
    """Test failures, cancellation and the ceiling"""

    @pytest.mark.asyncio
    async def test_raising_request_does_not_stop_the_user(self, fake_clock):
        """Test an executor error is recorded and the workflow carries on"""
        executor = FakeExecutor(clock=fake_clock, raise_urls={"/broken"})
        runner = WorkflowRunner(executor, clock=fake_clock)
        workflow = [WorkflowStep(steps=_requests("/broken", "/after"))]

        result = await runner.run("errors", workflow)

        assert executor.urls == ["/broken", "/after"]
        assert result.metrics.failed_requests == 1
        assert result.metrics.successful_requests == 1
        assert result.samples[0].error == "Request to /broken failed: connection refused: /broken"

    @pytest.mark.asyncio
    async def test_empty_workflow(self, fake_clock, fake_executor):
        """Test an empty workflow is rejected"""
        runner = WorkflowRunner(fake_executor, clock=fake_clock)

        with pytest.raises(ValidationError):
            await runner.run("empty", [])

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, fake_clock, fake_executor):
        """Test a set cancel event issues no requests"""
        event = asyncio.Event()
        event.set()
        runner = WorkflowRunner(fake_executor, clock=fake_clock, cancel_event=event)

        result = await runner.run("cancelled", [WorkflowStep(steps=_requests("/a"))])

        assert result.status == "cancelled"
        assert fake_executor.calls == []

    @pytest.mark.asyncio
    async def test_ceiling_stops_repeats(self):
        """Test the duration ceiling stops a long repeat loop"""
        executor = RecordingExecutor(delay=0.02)
        config = RunnerConfig(max_test_duration_seconds=0.05, drain_timeout_seconds=1.0)
        runner = WorkflowRunner(executor, clock=AsyncioClock(), config=config)
        workflow = [WorkflowStep(steps=[WorkflowRequest(url="/loop", request_count=100)])]

        result = await runner.run("ceiling", workflow)

        assert result.status == "timed_out"
        assert 1 <= result.metrics.total_requests < 100
        assert result.scheduled_requests == 100

    @pytest.mark.asyncio
    async def test_ceiling_during_think_time_adds_no_samples(self):
        """Test a user stopped while thinking records only the requests it sent"""
        executor = RecordingExecutor(delay=0.01)
        config = RunnerConfig(max_test_duration_seconds=0.1, drain_timeout_seconds=0.05)
        runner = WorkflowRunner(executor, clock=AsyncioClock(), config=config)
        workflow = [WorkflowStep(steps=_requests("/only"), think_time=Duration(2))]

        result = await runner.run("thinking", workflow)

        assert list(executor.started) == ["/only"]
        assert result.status == "timed_out"
        assert result.metrics.total_requests == 1
        assert result.metrics.failed_requests == 0
        assert result.metrics.error_rate == 0

    @pytest.mark.asyncio
    async def test_hard_timeout_records_in_flight_request(self):
        """Test a request cancelled at the ceiling becomes one timed out sample"""
        executor = RecordingExecutor(delay=1.0)
        config = RunnerConfig(max_test_duration_seconds=0.05, hard_timeout=True)
        runner = WorkflowRunner(executor, clock=AsyncioClock(), config=config)
        workflow = [WorkflowStep(type="parallel", steps=_requests("/slow-a", "/slow-b"))]

        result = await runner.run("stuck", workflow)

        assert result.status == "timed_out"
        assert result.metrics.total_requests == 2
        assert result.metrics.failed_requests == 2
        assert {s.error for s in result.samples} == {"Timed out: test exceeded 0.05s"}
