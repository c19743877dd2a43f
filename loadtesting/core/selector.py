"""
Executor selection.

Derives a handful of metrics from a spec and picks the strategy that should
run it. The decision is deterministic and the reason string always names the
metric(s) that triggered the chosen branch.
"""

import logging
from typing import List, Optional

from .config import SelectorConfig
from .models import (
    ExecutorSelectionResult,
    LoadPattern,
    LoadTestSpec,
    SelectionMetrics,
    WorkflowRequest,
    duration_seconds,
)
from .presets import PATTERN_COMPLEXITY, TEST_TYPE_COMPLEXITY

STRATEGY_BATCH = "batch"
STRATEGY_WORKFLOW = "workflow"
STRATEGY_HEAVY = "external-heavy-load-runner"
STRATEGY_PATTERN = "pattern-runner"

STRATEGIES = (STRATEGY_BATCH, STRATEGY_WORKFLOW, STRATEGY_HEAVY, STRATEGY_PATTERN)

logger = logging.getLogger(__name__)


def score_pattern_complexity(pattern: LoadPattern) -> int:
    """Score a load pattern from 0 to 100."""
    score = PATTERN_COMPLEXITY.get(pattern.type, 20)
    if pattern.stages:
        score += min(len(pattern.stages) * 5, 30)
    if pattern.requests_per_second:
        score += 10
    if pattern.ramp_up_time is not None:
        score += 5
    if pattern.plateau_time is not None:
        score += 5
    return min(score, 100)


def score_test_complexity(spec: LoadTestSpec) -> int:
    """Score the test itself (type and request features) from 0 to 100."""
    score = TEST_TYPE_COMPLEXITY.get(spec.test_type, 20)
    if len(spec.requests) > 1:
        score += min(len(spec.requests) * 5, 20)
    if any(r.payload for r in spec.requests):
        score += 10
    if any(r.media for r in spec.requests):
        score += 15
    if any(r.validation for r in spec.requests):
        score += 5
    return min(score, 100)


def total_requests(spec: LoadTestSpec) -> int:
    """Requests times virtual users, plus one entry per workflow step child."""
    virtual_users = spec.load_pattern.virtual_users or 1
    total = len(spec.requests) * virtual_users
    for step in spec.workflow:
        for child in step.steps:
            count = child.request_count if isinstance(child, WorkflowRequest) else None
            total += (count if isinstance(count, int) and count > 0 else 1) * virtual_users
    return total


def estimate_duration(spec: LoadTestSpec) -> float:
    """Explicit duration, else two seconds per virtual user (plus ramp-up, floor 30s)."""
    if spec.duration is not None:
        return spec.duration.to_seconds()

    virtual_users = spec.load_pattern.virtual_users or 1
    base_time = virtual_users * 2
    if spec.load_pattern.ramp_up_time is not None:
        return base_time + duration_seconds(spec.load_pattern.ramp_up_time)
    return max(base_time, 30)


def estimate_resource_usage(request_count: int, total: int, duration: float) -> str:
    requests_per_second = total / max(duration, 1)
    if request_count <= 10 and requests_per_second <= 5:
        return "low"
    if request_count <= 50 and requests_per_second <= 20:
        return "medium"
    return "high"


def _heavy_triggers(
    spec: LoadTestSpec, metrics: SelectionMetrics, config: SelectorConfig
) -> List[str]:
    """Every heavy load rule that fired, as human readable fragments."""
    triggers = []
    complex_pattern = metrics.load_pattern_complexity >= config.complex_pattern_threshold

    if spec.test_type in ("stress", "endurance"):
        triggers.append(f"testType={spec.test_type}")
    elif spec.test_type == "spike" and metrics.request_count > config.spike_heavy_virtual_users:
        triggers.append(f"testType=spike with {metrics.request_count} virtual users")
    elif spec.test_type == "volume" and (
        complex_pattern
        or metrics.request_count >= config.heavy_min_virtual_users
        or metrics.total_requests >= config.heavy_min_total_requests
    ):
        triggers.append("testType=volume")

    if metrics.request_count >= config.heavy_min_virtual_users:
        triggers.append(f"{metrics.request_count} virtual users")
    if metrics.total_requests >= config.heavy_min_total_requests:
        triggers.append(f"{metrics.total_requests} total requests")
    if complex_pattern and spec.load_pattern.type != "constant":
        triggers.append(f"complex load pattern ({metrics.load_pattern_complexity}%)")
    if metrics.estimated_duration_seconds >= config.heavy_min_duration_seconds:
        triggers.append(f"long duration ({round(metrics.estimated_duration_seconds)}s)")
    return triggers


def _heavy_confidence(metrics: SelectionMetrics, config: SelectorConfig) -> float:
    confidence = 0.5
    if (
        metrics.request_count >= config.heavy_min_virtual_users * 2
        or metrics.total_requests >= config.heavy_min_total_requests * 2
    ):
        confidence += 0.2
    if metrics.load_pattern_complexity >= config.complex_pattern_threshold * 2:
        confidence += 0.2
    if metrics.estimated_duration_seconds >= config.heavy_min_duration_seconds * 2:
        confidence += 0.1
    return min(confidence, 1.0)


def calculate_metrics(spec: LoadTestSpec) -> SelectionMetrics:
    """Metrics used by select_executor; requires_heavy_runner is left False here."""
    request_count = spec.load_pattern.virtual_users or 1
    total = total_requests(spec)
    duration = estimate_duration(spec)
    shape = spec.primary_shape

    return SelectionMetrics(
        request_count=request_count,
        total_requests=total,
        load_pattern_complexity=score_pattern_complexity(spec.load_pattern),
        test_complexity=score_test_complexity(spec),
        estimated_duration_seconds=duration,
        estimated_resource_usage=estimate_resource_usage(request_count, total, duration),
        requires_heavy_runner=False,
        requires_workflow=shape == "workflow",
        requires_batch=shape == "batch",
    )


def select_executor(
    spec: LoadTestSpec, config: Optional[SelectorConfig] = None
) -> ExecutorSelectionResult:
    """
    Choose the execution strategy for a spec.

    Order of precedence: batch, then workflow (unless heavy load rules fire),
    then the external heavy load runner, then the in-process pattern runner.

    Raises:
        ValidationError: If the spec is missing fields for its shape
    """
    config = config or SelectorConfig()
    spec.validate()

    metrics = calculate_metrics(spec)
    triggers = _heavy_triggers(spec, metrics, config)
    metrics.requires_heavy_runner = bool(triggers)

    if metrics.requires_batch:
        result = ExecutorSelectionResult(
            strategy=STRATEGY_BATCH,
            metrics=metrics,
            reason=f"Batch test with {len(spec.batch.tests)} tests",
            confidence=1.0,
        )
    elif metrics.requires_workflow and triggers:
        result = ExecutorSelectionResult(
            strategy=STRATEGY_HEAVY,
            metrics=metrics,
            reason=f"Heavy workflow test: {', '.join(triggers)}",
            confidence=0.9,
        )
    elif metrics.requires_workflow:
        result = ExecutorSelectionResult(
            strategy=STRATEGY_WORKFLOW,
            metrics=metrics,
            reason=(
                f"Workflow test: {len(spec.workflow)} workflow steps, "
                f"{metrics.request_count} virtual users"
            ),
            confidence=0.95,
        )
    elif triggers:
        result = ExecutorSelectionResult(
            strategy=STRATEGY_HEAVY,
            metrics=metrics,
            reason=f"Heavy load runner selected: {', '.join(triggers)}",
            confidence=_heavy_confidence(metrics, config),
        )
    else:
        result = ExecutorSelectionResult(
            strategy=STRATEGY_PATTERN,
            metrics=metrics,
            reason=(
                f"Pattern runner: {metrics.request_count} virtual users, "
                f"{metrics.estimated_resource_usage} resource usage, "
                f"{round(metrics.estimated_duration_seconds)}s duration"
            ),
            confidence=0.95,
        )

    logger.info(f"Selected {result.strategy} for {spec.id or 'spec'}: {result.reason}")
    return result
