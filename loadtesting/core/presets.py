"""Predefined defaults for executor selection, scheduling and batch runs."""

# Executor selection thresholds
SELECTOR_THRESHOLDS = {
    "heavy_min_virtual_users": 5000,
    "heavy_min_total_requests": 10000,
    "heavy_min_duration_seconds": 1800,
    "complex_pattern_threshold": 30,
    "spike_heavy_virtual_users": 500,
}

# Base complexity score per load pattern type
PATTERN_COMPLEXITY = {
    "constant": 10,
    "ramp-up": 40,
    "spike": 60,
    "step": 50,
    "random-burst": 70,
}

# Base complexity score per test type
TEST_TYPE_COMPLEXITY = {
    "baseline": 10,
    "spike": 50,
    "stress": 70,
    "endurance": 60,
    "volume": 80,
    "workflow": 40,
}

# Traffic pattern scheduling
SCHEDULER_DEFAULTS = {
    "spike_split": (0.2, 0.6, 0.2),
    "ramp_start_fraction": 0.1,
    "default_step_count": 4,
    "step_dwell_seconds": 2.0,
    "burst_proportions": (0.3, 0.5, 0.2),
    "burst_interval_seconds": (1.0, 3.0),
    "random_seed": None,
}

# In-process pattern runner
RUNNER_DEFAULTS = {
    "max_test_duration_seconds": None,
    "drain_timeout_seconds": 5.0,
    "hard_timeout": False,
    "default_duration_seconds": 60,
    "progress_log_every": 100,
}

# Batch scheduling
BATCH_DEFAULTS = {
    "retry_base_delay_ms": 1000,
    "fail_on_total_error": True,
    "aggregate_raw_samples": False,
    # Sub-tests above this many virtual users go to the external runner when one is set
    "heavy_virtual_users": 50,
}
