"""Load test orchestration engine."""

from .core.assertions import run_assertions
from .core.pattern_scheduler import build_schedule
from .core.selector import select_executor
from .core.statistics import (
    anomalies,
    correlate,
    detect_degradation,
    percentiles,
    summarize,
    throughput,
    trend,
)
from .orchestration.batch_scheduler import execute_batch

__version__ = "0.1.0"

__all__ = [
    "select_executor",
    "build_schedule",
    "execute_batch",
    "run_assertions",
    "percentiles",
    "throughput",
    "trend",
    "anomalies",
    "correlate",
    "summarize",
    "detect_degradation",
]
