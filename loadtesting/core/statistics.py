"""
Statistical reduction of latency samples and metric series.

All functions are pure and total over numeric input: non-finite values are
dropped and degenerate inputs (empty series, zero spans, zero variance) fall
back to zeros rather than raising.
"""

import math
import statistics
from typing import Dict, Iterable, List, Optional, Sequence

from .models import (
    AggregatedMetrics,
    Anomaly,
    PercentileSet,
    RequestSample,
    SeasonalPattern,
    ThroughputMetrics,
    TrendAnalysis,
)

TREND_MIN_CONFIDENCE = 0.3
TREND_MIN_SLOPE = 0.01
SEASONALITY_MIN_POINTS = 10
SEASONALITY_MIN_CORRELATION = 0.5
ANOMALY_THRESHOLD = 2.5

DEGRADATION_THRESHOLDS = {
    "response_time": 0.2,  # 20% slower
    "error_rate": 0.1,  # 10 percentage points more errors
    "throughput": 0.15,  # 15% less throughput
}


def _finite(values: Iterable[float]) -> List[float]:
    result = []
    for value in values:
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(number):
            result.append(number)
    return result


def _mean(values: Sequence[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def _stddev(values: Sequence[float]) -> float:
    return statistics.pstdev(values) if len(values) > 1 else 0.0


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Linearly interpolated percentile of already sorted values."""
    if not sorted_values:
        return 0.0
    index = (p / 100) * (len(sorted_values) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return sorted_values[lower]
    weight = index - lower
    return sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight


def percentiles(values: Iterable[float]) -> PercentileSet:
    """Min, max, mean and p50/p90/p95/p99; all zero for empty input."""
    cleaned = sorted(_finite(values))
    if not cleaned:
        return PercentileSet()
    return PercentileSet(
        min=cleaned[0],
        max=cleaned[-1],
        avg=_mean(cleaned),
        p50=percentile(cleaned, 50),
        p90=percentile(cleaned, 90),
        p95=percentile(cleaned, 95),
        p99=percentile(cleaned, 99),
    )


def throughput(samples: Sequence[RequestSample]) -> ThroughputMetrics:
    """
    Requests and bytes per second over the span of sample timestamps.

    A zero span reports the sample count as the request rate and no bytes.
    """
    if not samples:
        return ThroughputMetrics()

    timestamps = _finite(s.timestamp for s in samples)
    span = max(timestamps) - min(timestamps) if timestamps else 0.0
    total_bytes = sum(_finite(s.response_bytes for s in samples))

    if span <= 0:
        return ThroughputMetrics(requests_per_second=float(len(samples)), bytes_per_second=0.0)
    return ThroughputMetrics(
        requests_per_second=len(samples) / span,
        bytes_per_second=total_bytes / span,
    )


def summarize(
    samples: Sequence[RequestSample], duration_seconds: Optional[float] = None
) -> AggregatedMetrics:
    """Reduce raw request samples to aggregated metrics."""
    total = len(samples)
    successful = sum(1 for s in samples if s.success)
    failed = total - successful
    return AggregatedMetrics(
        total_requests=total,
        successful_requests=successful,
        failed_requests=failed,
        response_time=percentiles(s.latency_ms for s in samples),
        throughput=throughput(samples),
        error_rate=failed / total if total else 0.0,
        total_duration_seconds=duration_seconds or 0.0,
    )


def correlate(series_a: Sequence[float], series_b: Sequence[float]) -> float:
    """Pearson correlation; 0 for unequal lengths, empty input or zero variance."""
    if len(series_a) != len(series_b) or len(series_a) == 0:
        return 0.0

    mean_a = _mean(series_a)
    mean_b = _mean(series_b)
    numerator = 0.0
    squares_a = 0.0
    squares_b = 0.0
    for a, b in zip(series_a, series_b):
        diff_a = a - mean_a
        diff_b = b - mean_b
        numerator += diff_a * diff_b
        squares_a += diff_a * diff_a
        squares_b += diff_b * diff_b

    denominator = math.sqrt(squares_a * squares_b)
    if denominator == 0 or not math.isfinite(denominator):
        return 0.0
    return numerator / denominator


def linear_regression(values: Sequence[float]) -> Dict[str, float]:
    """Least squares fit of values against their index: slope, intercept and R^2."""
    n = len(values)
    if n < 2:
        return {"slope": 0.0, "intercept": values[0] if values else 0.0, "r_squared": 0.0}

    xs = range(n)
    sum_x = sum(xs)
    sum_y = sum(values)
    sum_xy = sum(x * y for x, y in zip(xs, values))
    sum_xx = sum(x * x for x in xs)

    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)
    intercept = (sum_y - slope * sum_x) / n

    y_mean = sum_y / n
    total_ss = sum((y - y_mean) ** 2 for y in values)
    residual_ss = sum((y - (slope * x + intercept)) ** 2 for x, y in zip(xs, values))
    r_squared = 1.0 if total_ss == 0 else 1 - residual_ss / total_ss

    return {
        "slope": slope,
        "intercept": intercept,
        "r_squared": max(0.0, min(1.0, r_squared)),
    }


def _periodic_correlation(values: Sequence[float], period: int) -> float:
    cycles = len(values) // period
    if cycles < 2:
        return 0.0
    first = values[:period]
    total = 0.0
    for cycle in range(1, cycles):
        window = values[cycle * period:(cycle + 1) * period]
        total += abs(correlate(first, window))
    return total / (cycles - 1)


def seasonality(values: Sequence[float]) -> Optional[SeasonalPattern]:
    """
    Best-effort repeating pattern detection.

    Tries every period in [2, n/3], comparing the first window with each later
    window, and reports the best period if its mean |correlation| exceeds 0.5.
    """
    cleaned = _finite(values)
    if len(cleaned) < SEASONALITY_MIN_POINTS:
        return None

    best_period = 0
    best_correlation = 0.0
    for period in range(2, len(cleaned) // 3 + 1):
        correlation = _periodic_correlation(cleaned, period)
        if correlation > best_correlation:
            best_correlation = correlation
            best_period = period

    if best_correlation <= SEASONALITY_MIN_CORRELATION:
        return None

    mean = _mean(cleaned)
    amplitude = max(abs(v - mean) for v in cleaned)
    return SeasonalPattern(
        period=best_period, amplitude=amplitude, phase=0.0, correlation=best_correlation
    )


def trend(series: Sequence[float]) -> TrendAnalysis:
    """Direction of an index-ordered series with R^2 as confidence."""
    cleaned = _finite(series)
    if len(cleaned) < 2:
        return TrendAnalysis(direction="stable", slope=0.0, confidence=0.0)

    fit = linear_regression(cleaned)
    slope = fit["slope"]
    r_squared = fit["r_squared"]

    if r_squared < TREND_MIN_CONFIDENCE or abs(slope) < TREND_MIN_SLOPE:
        direction = "stable"
    else:
        direction = "increasing" if slope > 0 else "decreasing"

    return TrendAnalysis(
        direction=direction,
        slope=slope,
        confidence=r_squared,
        seasonality=seasonality(cleaned),
    )


def _severity(z_score: float, threshold: float) -> str:
    if z_score > threshold * 1.1:
        return "high"
    if z_score > threshold * 1.05:
        return "medium"
    return "low"


def anomalies(series: Sequence[float], threshold: float = ANOMALY_THRESHOLD) -> List[Anomaly]:
    """Points whose z-score exceeds threshold."""
    values = _finite(series)
    if len(values) < 3:
        return []

    mean = _mean(values)
    stddev = _stddev(values)
    if stddev == 0:
        return []

    found = []
    for index, value in enumerate(values):
        z_score = abs(value - mean) / stddev
        if z_score > threshold:
            found.append(
                Anomaly(
                    index=index,
                    value=value,
                    expected_value=mean,
                    z_score=z_score,
                    severity=_severity(z_score, threshold),
                    description=(
                        f"Value {value:.2f} deviates significantly from expected "
                        f"{mean:.2f} (z-score: {z_score:.2f})"
                    ),
                )
            )
    return found


def detect_degradation(
    current: AggregatedMetrics,
    baseline: AggregatedMetrics,
    thresholds: Optional[Dict[str, float]] = None,
) -> List[str]:
    """Describe how current metrics regressed against a baseline run."""
    limits = {**DEGRADATION_THRESHOLDS, **(thresholds or {})}
    issues = []

    baseline_latency = baseline.response_time.avg
    if baseline_latency > 0:
        change = (current.response_time.avg - baseline_latency) / baseline_latency
        if change > limits["response_time"]:
            issues.append(f"Response time increased by {change * 100:.1f}%")

    error_change = current.error_rate - baseline.error_rate
    if error_change > limits["error_rate"]:
        issues.append(f"Error rate increased by {error_change * 100:.1f} percentage points")

    baseline_rps = baseline.throughput.requests_per_second
    if baseline_rps > 0:
        drop = (baseline_rps - current.throughput.requests_per_second) / baseline_rps
        if drop > limits["throughput"]:
            issues.append(f"Throughput decreased by {drop * 100:.1f}%")

    return issues
