"""Core load testing components."""

from .models import LoadTestSpec, BatchTestSpec, AggregatedMetrics, RequestSample
from .pattern_scheduler import build_schedule
from .selector import select_executor
from .statistics import percentiles, throughput, trend, anomalies, correlate, summarize
from .assertions import run_assertions

__all__ = [
    "LoadTestSpec",
    "BatchTestSpec",
    "AggregatedMetrics",
    "RequestSample",
    "build_schedule",
    "select_executor",
    "percentiles",
    "throughput",
    "trend",
    "anomalies",
    "correlate",
    "summarize",
    "run_assertions",
]
