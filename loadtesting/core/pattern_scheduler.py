"""
Traffic pattern scheduling.

Maps a load pattern, a total request count and a duration onto an ordered list
of dispatch offsets. The number of offsets always equals the requested total:
whenever a total is split proportionally, the rounding remainder goes to one
designated phase (the last one, or the largest burst for random bursts).
Malformed numbers (NaN, negatives) are treated as zero instead of raising.
"""

import math
import random
from typing import Any, Callable, Dict, List, Optional, Sequence

from .config import SchedulerConfig
from .models import DispatchSchedule, Duration, LoadPattern, SchedulePhase


def _clean_count(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or number <= 0:
        return 0
    return int(number)


def _clean_seconds(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, Duration):
        value = value.to_seconds()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number <= 0:
        return 0.0
    return number


def _normalize_weights(weights: Sequence[float]) -> List[float]:
    cleaned = [w if isinstance(w, (int, float)) and math.isfinite(w) and w > 0 else 0.0 for w in weights]
    total = sum(cleaned)
    if total <= 0:
        return [1.0 / len(cleaned)] * len(cleaned)
    return [w / total for w in cleaned]


def split_proportionally(
    total: int, proportions: Sequence[float], remainder_index: int = -1
) -> List[int]:
    """
    Split total into integer shares following proportions.

    Each share is floored and the remainder is added to the share at
    remainder_index, so the shares always sum to total.
    """
    if not proportions:
        return []
    weights = _normalize_weights(proportions)
    shares = [int(math.floor(total * w)) for w in weights]
    shares[remainder_index] += total - sum(shares)

    # Float error can overshoot by one; take it back from the largest shares
    while shares[remainder_index] < 0:
        shares[remainder_index] += 1
        largest = max(range(len(shares)), key=lambda i: shares[i])
        shares[largest] -= 1
    return shares


def reconcile_sizes(sizes: Sequence[Any], total: int) -> List[int]:
    """Adjust step sizes so they sum to total (shortfall to last, excess trimmed from the end)."""
    cleaned = [_clean_count(s) for s in sizes]
    cleaned = [s for s in cleaned if s > 0]
    if not cleaned:
        return [total] if total > 0 else []

    difference = total - sum(cleaned)
    if difference > 0:
        cleaned[-1] += difference
    while difference < 0 and cleaned:
        take = min(cleaned[-1], -difference)
        cleaned[-1] -= take
        difference += take
        if cleaned[-1] == 0:
            cleaned.pop()
    return cleaned


def _spaced_offsets(start: float, count: int, phase_seconds: float) -> List[float]:
    if count <= 0:
        return []
    spacing = phase_seconds / count if phase_seconds > 0 else 0.0
    return [start + i * spacing for i in range(count)]


def _constant(
    pattern: LoadPattern, count: int, seconds: float, config: SchedulerConfig
) -> DispatchSchedule:
    offsets = _spaced_offsets(0.0, count, seconds)
    spacing = seconds / count if seconds > 0 else 0.0
    return DispatchSchedule(
        pattern_type="constant",
        offsets=offsets,
        phases=[SchedulePhase("constant", count, 0.0, spacing)],
    )


def _spike(
    pattern: LoadPattern, count: int, seconds: float, config: SchedulerConfig
) -> DispatchSchedule:
    split = _normalize_weights(config.spike_split)
    counts = split_proportionally(count, split)
    names = ("ramp-up", "peak", "ramp-down")

    offsets: List[float] = []
    phases: List[SchedulePhase] = []
    start = 0.0
    for name, share, phase_count in zip(names, split, counts):
        phase_seconds = seconds * share
        spacing = phase_seconds / phase_count if phase_count and phase_seconds > 0 else 0.0
        offsets.extend(_spaced_offsets(start, phase_count, phase_seconds))
        phases.append(SchedulePhase(name, phase_count, start, spacing))
        start += phase_seconds

    return DispatchSchedule(pattern_type="spike", offsets=offsets, phases=phases)


def _ramp_up(
    pattern: LoadPattern, count: int, seconds: float, config: SchedulerConfig
) -> DispatchSchedule:
    end_rate = _clean_seconds(pattern.requests_per_second)
    if end_rate <= 0 and seconds > 0:
        end_rate = count / seconds

    if end_rate <= 0:
        # Nothing to pace against: fire everything immediately
        return DispatchSchedule(
            pattern_type="ramp-up",
            offsets=[0.0] * count,
            phases=[SchedulePhase("ramp-up", count, 0.0, 0.0)],
        )

    fraction = min(max(config.ramp_start_fraction, 0.01), 1.0)
    start_rate = end_rate * fraction

    offsets: List[float] = []
    elapsed = 0.0
    for i in range(count):
        offsets.append(elapsed)
        progress = i / count
        current_rate = start_rate + (end_rate - start_rate) * progress
        elapsed += 1.0 / current_rate

    spacing = offsets[-1] / (count - 1) if count > 1 else 0.0
    return DispatchSchedule(
        pattern_type="ramp-up",
        offsets=offsets,
        phases=[SchedulePhase("ramp-up", count, 0.0, spacing)],
    )


def _step_sizes(pattern: LoadPattern, count: int, config: SchedulerConfig) -> List[int]:
    if pattern.step_sizes:
        return reconcile_sizes(pattern.step_sizes, count)
    if pattern.stages:
        return reconcile_sizes([stage.target for stage in pattern.stages], count)
    steps = max(int(config.default_step_count), 1)
    return [s for s in split_proportionally(count, [1.0] * steps) if s > 0]


def _step(
    pattern: LoadPattern, count: int, seconds: float, config: SchedulerConfig
) -> DispatchSchedule:
    dwell = _clean_seconds(config.step_dwell_seconds)
    offsets: List[float] = []
    phases: List[SchedulePhase] = []
    for index, size in enumerate(_step_sizes(pattern, count, config)):
        start = index * dwell
        offsets.extend([start] * size)
        phases.append(SchedulePhase(f"step-{index + 1}", size, start, 0.0))
    return DispatchSchedule(pattern_type="step", offsets=offsets, phases=phases)


def _burst_interval(pattern: LoadPattern, config: SchedulerConfig) -> tuple:
    low, high = config.burst_interval_seconds
    burst = pattern.burst_config
    if burst is not None:
        if burst.min_interval_seconds is not None:
            low = burst.min_interval_seconds
        if burst.max_interval_seconds is not None:
            high = burst.max_interval_seconds
    low = _clean_seconds(low)
    high = _clean_seconds(high)
    return (low, high) if low <= high else (high, low)


def _random_burst(
    pattern: LoadPattern, count: int, seconds: float, config: SchedulerConfig
) -> DispatchSchedule:
    proportions = list(config.burst_proportions)
    largest = max(range(len(proportions)), key=lambda i: proportions[i])
    sizes = split_proportionally(count, proportions, remainder_index=largest)

    seed = config.random_seed
    if seed is None:
        seed = f"random-burst:{count}:{seconds}"
    rng = random.Random(seed)
    low, high = _burst_interval(pattern, config)

    offsets: List[float] = []
    phases: List[SchedulePhase] = []
    start = 0.0
    for index, size in enumerate(sizes):
        if index > 0:
            start += rng.uniform(low, high)
        offsets.extend([start] * size)
        phases.append(SchedulePhase(f"burst-{index + 1}", size, start, 0.0))
    return DispatchSchedule(pattern_type="random-burst", offsets=offsets, phases=phases)


_BUILDERS: Dict[str, Callable[..., DispatchSchedule]] = {
    "constant": _constant,
    "spike": _spike,
    "ramp-up": _ramp_up,
    "step": _step,
    "random-burst": _random_burst,
}


def build_schedule(
    pattern: Optional[LoadPattern],
    total_requests: Any,
    duration: Any = None,
    config: Optional[SchedulerConfig] = None,
) -> DispatchSchedule:
    """
    Build the dispatch schedule for a pattern.

    Args:
        pattern: Load pattern (None is read as constant)
        total_requests: Number of requests to schedule
        duration: Seconds or a Duration; zero or missing fires immediately
            for duration driven patterns (constant, spike, ramp-up without RPS)
        config: Scheduler shape parameters

    Returns:
        DispatchSchedule whose length equals total_requests
    """
    config = config or SchedulerConfig()
    pattern = pattern or LoadPattern()
    count = _clean_count(total_requests)
    seconds = _clean_seconds(duration)

    if count == 0:
        return DispatchSchedule(pattern_type=pattern.type)

    builder = _BUILDERS.get(pattern.type, _constant)
    return builder(pattern, count, seconds, config)
