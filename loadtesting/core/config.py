"""Configuration values passed into the selector, scheduler and runners."""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .presets import (
    BATCH_DEFAULTS,
    RUNNER_DEFAULTS,
    SCHEDULER_DEFAULTS,
    SELECTOR_THRESHOLDS,
)


@dataclass
class SelectorConfig:
    """Thresholds for choosing an execution strategy."""

    heavy_min_virtual_users: int = SELECTOR_THRESHOLDS["heavy_min_virtual_users"]
    heavy_min_total_requests: int = SELECTOR_THRESHOLDS["heavy_min_total_requests"]
    heavy_min_duration_seconds: float = SELECTOR_THRESHOLDS[
        "heavy_min_duration_seconds"
    ]
    complex_pattern_threshold: int = SELECTOR_THRESHOLDS["complex_pattern_threshold"]
    spike_heavy_virtual_users: int = SELECTOR_THRESHOLDS["spike_heavy_virtual_users"]


@dataclass
class SchedulerConfig:
    """Shape parameters for the traffic pattern scheduler."""

    spike_split: Tuple[float, float, float] = SCHEDULER_DEFAULTS["spike_split"]
    ramp_start_fraction: float = SCHEDULER_DEFAULTS["ramp_start_fraction"]
    default_step_count: int = SCHEDULER_DEFAULTS["default_step_count"]
    step_dwell_seconds: float = SCHEDULER_DEFAULTS["step_dwell_seconds"]
    burst_proportions: Tuple[float, ...] = SCHEDULER_DEFAULTS["burst_proportions"]
    burst_interval_seconds: Tuple[float, float] = SCHEDULER_DEFAULTS[
        "burst_interval_seconds"
    ]
    random_seed: Optional[int] = SCHEDULER_DEFAULTS["random_seed"]


@dataclass
class RunnerConfig:
    """Settings for the in-process pattern and workflow runners."""

    # Per-test ceiling; None means the schedule decides when to stop
    max_test_duration_seconds: Optional[float] = RUNNER_DEFAULTS[
        "max_test_duration_seconds"
    ]
    drain_timeout_seconds: float = RUNNER_DEFAULTS["drain_timeout_seconds"]
    hard_timeout: bool = RUNNER_DEFAULTS["hard_timeout"]

    # Used when a spec carries no duration
    default_duration_seconds: float = RUNNER_DEFAULTS["default_duration_seconds"]
    progress_log_every: int = RUNNER_DEFAULTS["progress_log_every"]

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


@dataclass
class BatchConfig:
    """Settings for the batch scheduler."""

    retry_base_delay_ms: float = BATCH_DEFAULTS["retry_base_delay_ms"]
    fail_on_total_error: bool = BATCH_DEFAULTS["fail_on_total_error"]
    aggregate_raw_samples: bool = BATCH_DEFAULTS["aggregate_raw_samples"]
    heavy_virtual_users: int = BATCH_DEFAULTS["heavy_virtual_users"]

    # Overrides execution_options.parallel_concurrency when set
    concurrency: Optional[int] = None

    runner: RunnerConfig = field(default_factory=RunnerConfig)
