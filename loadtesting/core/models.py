"""Data models for load test specs, samples and results."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .exceptions import ValidationError

PATTERN_TYPES = ("constant", "ramp-up", "spike", "step", "random-burst")
EXECUTION_MODES = ("parallel", "sequential")
ASSERTION_TYPES = ("response_time", "success_rate", "throughput", "error_rate", "custom")
ASSERTION_CONDITIONS = ("less_than", "greater_than", "equals", "not_equals", "contains")

_UNIT_SECONDS = {
    "milliseconds": 0.001,
    "millisecond": 0.001,
    "ms": 0.001,
    "seconds": 1.0,
    "second": 1.0,
    "sec": 1.0,
    "secs": 1.0,
    "s": 1.0,
    "minutes": 60.0,
    "minute": 60.0,
    "min": 60.0,
    "mins": 60.0,
    "m": 60.0,
    "hours": 3600.0,
    "hour": 3600.0,
    "hr": 3600.0,
    "hrs": 3600.0,
    "h": 3600.0,
}


# ---------------------------------------------------------------------------
# Spec model
# ---------------------------------------------------------------------------


@dataclass
class Duration:
    """A length of time as written in a spec, e.g. 30 seconds."""

    value: float
    unit: str = "seconds"

    def to_seconds(self) -> float:
        """Convert to seconds; unknown units are read as seconds."""
        return float(self.value) * _UNIT_SECONDS.get(str(self.unit).lower(), 1.0)

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "unit": self.unit}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Duration"]:
        if data is None:
            return None
        if isinstance(data, Duration):
            return data
        if isinstance(data, (int, float)):
            return cls(value=data)
        return cls(value=data.get("value", 0), unit=data.get("unit", "seconds"))


def duration_seconds(duration: Optional[Duration], default: float = 0.0) -> float:
    """Seconds for an optional duration, falling back to default."""
    if duration is None:
        return default
    return duration.to_seconds()


@dataclass
class Stage:
    """A single stage of a staged load pattern."""

    duration: str
    target: int


@dataclass
class BurstConfig:
    """Random burst tuning declared on a load pattern."""

    min_burst_size: Optional[int] = None
    max_burst_size: Optional[int] = None
    min_interval_seconds: Optional[float] = None
    max_interval_seconds: Optional[float] = None
    burst_probability: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["BurstConfig"]:
        if not data:
            return None
        return cls(
            min_burst_size=data.get("minBurstSize"),
            max_burst_size=data.get("maxBurstSize"),
            min_interval_seconds=data.get("minIntervalSeconds"),
            max_interval_seconds=data.get("maxIntervalSeconds"),
            burst_probability=data.get("burstProbability"),
        )


@dataclass
class LoadPattern:
    """Temporal shape of the traffic for one test."""

    type: str = "constant"
    virtual_users: Optional[int] = None
    requests_per_second: Optional[float] = None
    ramp_up_time: Optional[Duration] = None
    plateau_time: Optional[Duration] = None
    ramp_down_time: Optional[Duration] = None

    # Spike testing specific
    baseline_vus: Optional[int] = None
    spike_intensity: Optional[float] = None

    # Step and random burst specific
    step_sizes: Optional[List[int]] = None
    burst_config: Optional[BurstConfig] = None
    stages: List[Stage] = field(default_factory=list)

    def validate(self) -> None:
        if self.type not in PATTERN_TYPES:
            raise ValidationError(
                f"Unknown load pattern type '{self.type}'", field_name="loadPattern.type"
            )
        if self.virtual_users is not None and self.virtual_users <= 0:
            raise ValidationError(
                f"virtualUsers must be positive, got {self.virtual_users}",
                field_name="loadPattern.virtualUsers",
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "LoadPattern":
        if not data:
            return cls()
        return cls(
            type=data.get("type", "constant"),
            virtual_users=data.get("virtualUsers"),
            requests_per_second=data.get("requestsPerSecond"),
            ramp_up_time=Duration.from_dict(data.get("rampUpTime")),
            plateau_time=Duration.from_dict(data.get("plateauTime")),
            ramp_down_time=Duration.from_dict(data.get("rampDownTime")),
            baseline_vus=data.get("baselineVUs"),
            spike_intensity=data.get("spikeIntensity"),
            step_sizes=data.get("stepSizes"),
            burst_config=BurstConfig.from_dict(data.get("burstConfig")),
            stages=[
                Stage(duration=str(s.get("duration", "")), target=int(s.get("target", 0)))
                for s in data.get("stages") or []
            ],
        )


@dataclass
class RequestSpec:
    """A single target request."""

    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    payload: Optional[Dict[str, Any]] = None
    media: Optional[Dict[str, Any]] = None
    validation: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequestSpec":
        return cls(
            url=data.get("url", ""),
            method=str(data.get("method", "GET")).upper(),
            headers=dict(data.get("headers") or {}),
            body=data.get("body"),
            payload=data.get("payload"),
            media=data.get("media"),
            validation=list(data.get("validation") or []),
        )


@dataclass
class WorkflowRequest(RequestSpec):
    """A request inside a workflow step, optionally repeated."""

    request_count: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowRequest":
        base = RequestSpec.from_dict(data)
        return cls(**asdict(base), request_count=data.get("requestCount"))


@dataclass
class WorkflowStep:
    """A group of requests run one after another or all at once."""

    type: str = "sequential"
    steps: List[Union[WorkflowRequest, "WorkflowStep"]] = field(default_factory=list)
    id: Optional[str] = None
    name: Optional[str] = None
    think_time: Optional[Duration] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowStep":
        steps: List[Union[WorkflowRequest, WorkflowStep]] = []
        for item in data.get("steps") or []:
            if "steps" in item:
                steps.append(WorkflowStep.from_dict(item))
            else:
                steps.append(WorkflowRequest.from_dict(item))
        return cls(
            type=data.get("type", "sequential"),
            steps=steps,
            id=data.get("id"),
            name=data.get("name"),
            think_time=Duration.from_dict(data.get("thinkTime")),
        )


@dataclass
class Assertion:
    """A pass/fail condition on aggregated metrics."""

    name: str
    type: str
    condition: str
    expected_value: Any
    tolerance: Optional[float] = None
    custom_expression: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Assertion":
        return cls(
            name=data.get("name", ""),
            type=data.get("type", "custom"),
            condition=data.get("condition", "equals"),
            expected_value=data.get("expectedValue"),
            tolerance=data.get("tolerance"),
            custom_expression=data.get("customExpression"),
        )


@dataclass
class BatchTestItem:
    """One independent sub-test of a batch."""

    id: str
    name: str = ""
    description: str = ""
    test_type: str = "baseline"
    requests: List[RequestSpec] = field(default_factory=list)
    workflow: List[WorkflowStep] = field(default_factory=list)
    load_pattern: Optional[LoadPattern] = None
    duration: Optional[Duration] = None
    weight: Optional[int] = None
    priority: Optional[str] = None
    execution_order: Optional[int] = None
    retries: Optional[int] = None
    dependencies: List[str] = field(default_factory=list)
    assertions: List[Assertion] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchTestItem":
        pattern = data.get("loadPattern")
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            description=data.get("description", ""),
            test_type=data.get("testType", "baseline"),
            requests=[RequestSpec.from_dict(r) for r in data.get("requests") or []],
            workflow=[WorkflowStep.from_dict(w) for w in data.get("workflow") or []],
            load_pattern=LoadPattern.from_dict(pattern) if pattern else None,
            duration=Duration.from_dict(data.get("duration")),
            weight=data.get("weight"),
            priority=data.get("priority"),
            execution_order=data.get("executionOrder"),
            retries=data.get("retries", data.get("maxRetries")),
            dependencies=list(data.get("dependencies") or []),
            assertions=[Assertion.from_dict(a) for a in data.get("assertions") or []],
        )


@dataclass
class ExecutionOptions:
    """Batch level execution policy."""

    parallel_concurrency: Optional[int] = None
    sequential_delay: Optional[Duration] = None
    retry_failed_tests: bool = True
    max_retries: int = 0
    retry_base_delay_ms: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ExecutionOptions":
        if not data:
            return cls()
        return cls(
            parallel_concurrency=data.get("parallelConcurrency"),
            sequential_delay=Duration.from_dict(data.get("sequentialDelay")),
            retry_failed_tests=data.get("retryFailedTests", True),
            max_retries=data.get("maxRetries", 0) or 0,
            retry_base_delay_ms=data.get("retryBaseDelayMs"),
        )


@dataclass
class BatchTestSpec:
    """A group of independent sub-tests run under one policy."""

    id: str
    name: str = ""
    description: str = ""
    tests: List[BatchTestItem] = field(default_factory=list)
    execution_mode: str = "parallel"
    aggregation_mode: str = "combined"
    global_load_pattern: Optional[LoadPattern] = None
    global_duration: Optional[Duration] = None
    execution_options: ExecutionOptions = field(default_factory=ExecutionOptions)

    def validate(self) -> None:
        if not self.tests:
            raise ValidationError("Batch declares no tests", field_name="batch.tests")
        if self.execution_mode not in EXECUTION_MODES:
            raise ValidationError(
                f"Unknown execution mode '{self.execution_mode}'",
                field_name="batch.executionMode",
            )
        seen = set()
        for item in self.tests:
            if not item.id:
                raise ValidationError("Batch test without id", field_name="batch.tests.id")
            if item.id in seen:
                raise ValidationError(
                    f"Duplicate batch test id '{item.id}'", field_name="batch.tests.id"
                )
            seen.add(item.id)
            if not item.requests and not item.workflow:
                raise ValidationError(
                    f"Batch test '{item.id}' has neither requests nor workflow",
                    field_name="batch.tests.requests",
                )
            if item.load_pattern is not None:
                item.load_pattern.validate()
        if self.global_load_pattern is not None:
            self.global_load_pattern.validate()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchTestSpec":
        pattern = data.get("globalLoadPattern")
        return cls(
            id=str(data.get("id", "batch")),
            name=data.get("name", ""),
            description=data.get("description", ""),
            tests=[BatchTestItem.from_dict(t) for t in data.get("tests") or []],
            execution_mode=data.get("executionMode", "parallel"),
            aggregation_mode=data.get("aggregationMode", "combined"),
            global_load_pattern=LoadPattern.from_dict(pattern) if pattern else None,
            global_duration=Duration.from_dict(data.get("globalDuration")),
            execution_options=ExecutionOptions.from_dict(data.get("executionOptions")),
        )


@dataclass
class LoadTestSpec:
    """Top level load test specification."""

    id: str
    test_type: str = "baseline"
    name: str = ""
    description: str = ""
    requests: List[RequestSpec] = field(default_factory=list)
    workflow: List[WorkflowStep] = field(default_factory=list)
    batch: Optional[BatchTestSpec] = None
    load_pattern: LoadPattern = field(default_factory=LoadPattern)
    duration: Optional[Duration] = None
    assertions: List[Assertion] = field(default_factory=list)

    @property
    def primary_shape(self) -> str:
        """Which of batch, workflow or requests drives execution."""
        if self.batch is not None and self.batch.tests:
            return "batch"
        if self.workflow:
            return "workflow"
        return "requests"

    def validate(self) -> None:
        """Raise ValidationError if the primary shape is incomplete."""
        self.load_pattern.validate()
        shape = self.primary_shape

        if shape == "batch":
            self.batch.validate()
            return

        if shape == "workflow":
            for step in self.workflow:
                if not step.steps:
                    raise ValidationError(
                        f"Workflow step '{step.name or step.id or step.type}' is empty",
                        field_name="workflow.steps",
                    )
            return

        if not self.requests:
            raise ValidationError(
                "Spec declares no requests, workflow or batch", field_name="requests"
            )
        for request in self.requests:
            if not request.url:
                raise ValidationError("Request without url", field_name="requests.url")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoadTestSpec":
        batch = data.get("batch")
        return cls(
            id=str(data.get("id", "")),
            test_type=data.get("testType", "baseline"),
            name=data.get("name", ""),
            description=data.get("description", ""),
            requests=[RequestSpec.from_dict(r) for r in data.get("requests") or []],
            workflow=[WorkflowStep.from_dict(w) for w in data.get("workflow") or []],
            batch=BatchTestSpec.from_dict(batch) if batch else None,
            load_pattern=LoadPattern.from_dict(data.get("loadPattern")),
            duration=Duration.from_dict(data.get("duration")),
            assertions=[Assertion.from_dict(a) for a in data.get("assertions") or []],
        )


# ---------------------------------------------------------------------------
# Samples and metrics
# ---------------------------------------------------------------------------


@dataclass
class RequestSample:
    """Outcome of a single executed request."""

    timestamp: float
    latency_ms: float
    success: bool
    response_bytes: int = 0
    status_code: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PercentileSet:
    """Latency distribution summary in milliseconds."""

    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    p50: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


@dataclass
class ThroughputMetrics:
    requests_per_second: float = 0.0
    bytes_per_second: float = 0.0


@dataclass
class AggregatedMetrics:
    """Reduced metrics for a run or a whole batch."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    response_time: PercentileSet = field(default_factory=PercentileSet)
    throughput: ThroughputMetrics = field(default_factory=ThroughputMetrics)

    # Fraction of failed requests, 0..1
    error_rate: float = 0.0
    total_duration_seconds: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_requests <= 0:
            return 0.0
        return self.successful_requests / self.total_requests

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "success_rate": self.success_rate,
            "min_latency_ms": self.response_time.min,
            "max_latency_ms": self.response_time.max,
            "avg_latency_ms": self.response_time.avg,
            "p50_latency_ms": self.response_time.p50,
            "p90_latency_ms": self.response_time.p90,
            "p95_latency_ms": self.response_time.p95,
            "p99_latency_ms": self.response_time.p99,
            "requests_per_second": self.throughput.requests_per_second,
            "bytes_per_second": self.throughput.bytes_per_second,
            "error_rate": self.error_rate,
            "total_duration_seconds": self.total_duration_seconds,
        }


@dataclass
class SeasonalPattern:
    period: int
    amplitude: float
    phase: float = 0.0
    correlation: float = 0.0


@dataclass
class TrendAnalysis:
    direction: str
    slope: float
    confidence: float
    seasonality: Optional[SeasonalPattern] = None


@dataclass
class Anomaly:
    index: int
    value: float
    expected_value: float
    z_score: float
    severity: str
    description: str


# ---------------------------------------------------------------------------
# Selection, scheduling and execution results
# ---------------------------------------------------------------------------


@dataclass
class SelectionMetrics:
    """Metrics derived from a spec to choose an executor."""

    request_count: int
    total_requests: int
    load_pattern_complexity: int
    test_complexity: int
    estimated_duration_seconds: float
    estimated_resource_usage: str
    requires_heavy_runner: bool
    requires_workflow: bool
    requires_batch: bool


@dataclass
class ExecutorSelectionResult:
    strategy: str
    metrics: SelectionMetrics
    reason: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SchedulePhase:
    """A contiguous slice of a dispatch schedule."""

    name: str
    request_count: int
    start_offset: float
    spacing: float


@dataclass
class DispatchSchedule:
    """Ordered dispatch offsets (seconds from run start)."""

    pattern_type: str
    offsets: List[float] = field(default_factory=list)
    phases: List[SchedulePhase] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.offsets)

    @property
    def total(self) -> int:
        return len(self.offsets)

    @property
    def duration(self) -> float:
        """Offset of the last dispatch."""
        return self.offsets[-1] if self.offsets else 0.0

    def rate_curve(self, bucket_seconds: float = 1.0) -> List[int]:
        """Number of dispatches falling in each time bucket."""
        if not self.offsets or bucket_seconds <= 0:
            return []
        buckets = [0] * (int(self.duration // bucket_seconds) + 1)
        for offset in self.offsets:
            buckets[int(offset // bucket_seconds)] += 1
        return buckets

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern_type": self.pattern_type,
            "total": self.total,
            "duration": self.duration,
            "phases": [asdict(p) for p in self.phases],
            "offsets": self.offsets,
        }


@dataclass
class RunResult:
    """Result of one in-process run of a spec."""

    test_id: str
    strategy: str
    status: str  # "completed", "cancelled" or "timed_out"
    metrics: AggregatedMetrics
    start_time: float
    end_time: float
    scheduled_requests: int = 0
    error: Optional[str] = None
    samples: List[RequestSample] = field(default_factory=list, repr=False)

    @property
    def duration_seconds(self) -> float:
        return max(self.end_time - self.start_time, 0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "strategy": self.strategy,
            "status": self.status,
            "scheduled_requests": self.scheduled_requests,
            "duration_seconds": self.duration_seconds,
            "metrics": self.metrics.to_dict(),
            "error": self.error,
        }


@dataclass
class AssertionResult:
    name: str
    type: str
    condition: str
    expected_value: Any
    actual_value: Any
    passed: bool
    tolerance: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BatchTestResult:
    """Outcome of one batch sub-test."""

    test_id: str
    test_name: str
    status: str  # "completed", "failed" or "skipped"
    start_time: float
    end_time: float
    metrics: AggregatedMetrics = field(default_factory=AggregatedMetrics)
    error: Optional[str] = None
    retry_count: int = 0
    assertions: List[AssertionResult] = field(default_factory=list)
    samples: List[RequestSample] = field(default_factory=list, repr=False)

    @property
    def duration_seconds(self) -> float:
        return max(self.end_time - self.start_time, 0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "test_name": self.test_name,
            "status": self.status,
            "duration_seconds": self.duration_seconds,
            "metrics": self.metrics.to_dict(),
            "error": self.error,
            "retry_count": self.retry_count,
            "assertions": [a.to_dict() for a in self.assertions],
        }


@dataclass
class BatchExecutionResult:
    """Outcome of a whole batch."""

    batch_id: str
    status: str  # "completed", "failed", "partial" or "cancelled"
    execution_mode: str
    start_timestamp: datetime
    end_timestamp: datetime
    duration_seconds: float
    total_tests: int
    successful_tests: int
    failed_tests: int
    results: List[BatchTestResult]
    aggregated_metrics: AggregatedMetrics
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "status": self.status,
            "execution_mode": self.execution_mode,
            "duration_seconds": self.duration_seconds,
            "total_tests": self.total_tests,
            "successful_tests": self.successful_tests,
            "failed_tests": self.failed_tests,
            "results": [r.to_dict() for r in self.results],
            "aggregated_metrics": self.aggregated_metrics.to_dict(),
            "warnings": self.warnings,
            "error": self.error,
        }
