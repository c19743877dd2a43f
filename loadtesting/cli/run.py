"""CLI for running a load test spec."""

import argparse
import asyncio
import sys
from typing import List, Optional

from ..core.config import BatchConfig, RunnerConfig
from ..core.exceptions import LoadTestError
from ..core.executor import HttpRequestExecutor
from ..core.models import LoadTestSpec, RequestSample
from ..orchestration.orchestrator import LoadTestOrchestrator, LoadTestReport
from ..results.aggregator import BatchResultAggregator, print_metrics
from ..results.archive import export_samples
from .common import fail, load_spec


def collect_samples(report: LoadTestReport) -> List[RequestSample]:
    if report.batch is not None:
        return [s for r in report.batch.results for s in r.samples]
    if report.run is not None:
        return list(report.run.samples)
    return []


async def run_spec(
    spec: LoadTestSpec,
    config: BatchConfig,
    request_timeout: float,
    raw_archive: Optional[str] = None,
) -> LoadTestReport:
    async with HttpRequestExecutor(timeout_seconds=request_timeout) as executor:
        orchestrator = LoadTestOrchestrator(executor, batch_config=config)
        report = await orchestrator.run(spec)

    if raw_archive:
        await export_samples(collect_samples(report), raw_archive)
    return report


def print_report(report: LoadTestReport, aggregation_mode: str = "combined") -> None:
    print(f"\nStrategy: {report.selection.strategy} ({report.selection.reason})")
    print(f"Status:   {report.status}")

    if report.batch is not None and aggregation_mode == "separate":
        aggregator = BatchResultAggregator()
        for result in report.batch.results:
            aggregator.print_single_result(result)
    elif report.batch is not None:
        aggregator = BatchResultAggregator()
        aggregator.add_batch(report.batch)
        aggregator.print_summary_table(
            title=f"BATCH {report.batch.batch_id}",
            description=f"Mode: {report.batch.execution_mode}, "
            f"{report.batch.successful_tests}/{report.batch.total_tests} tests completed",
        )

    print_metrics(report.metrics)

    if report.assertions:
        print("\nASSERTIONS")
        print("-" * 30)
        for result in report.assertions:
            mark = "PASS" if result.passed else "FAIL"
            print(f"[{mark}] {result.name}: {result.actual_value} {result.condition} {result.expected_value}")

    if report.warnings:
        print("\nWARNINGS")
        print("-" * 30)
        for warning in report.warnings:
            print(f"- {warning}")


def main():
    """Main entry point for run CLI."""
    parser = argparse.ArgumentParser(description="Run a load test spec")
    parser.add_argument("spec", type=str, help="Path to a JSON load test spec")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Batch sub-tests to run at once (default: from the spec, else all)",
    )
    parser.add_argument(
        "--raw-archive",
        type=str,
        default=None,
        metavar="PATH",
        help="Write every raw request sample to PATH as JSON Lines",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Per-request timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "--max-duration",
        type=float,
        default=None,
        help="Per-test duration ceiling in seconds (default: none)",
    )
    parser.add_argument(
        "--hard-timeout",
        action="store_true",
        help="Cancel in-flight requests at the ceiling instead of draining",
    )
    parser.add_argument(
        "--raw-percentiles",
        action="store_true",
        help="Compute batch percentiles over raw samples instead of per-test averages",
    )
    parser.add_argument(
        "--fail-on-assertions",
        action="store_true",
        help="Exit with status 1 when any assertion fails",
    )
    args = parser.parse_args()

    if args.concurrency is not None and args.concurrency <= 0:
        print("Error: concurrency must be positive")
        sys.exit(1)
    if args.timeout <= 0:
        print("Error: timeout must be positive")
        sys.exit(1)

    config = BatchConfig(
        concurrency=args.concurrency,
        aggregate_raw_samples=args.raw_percentiles,
        runner=RunnerConfig(
            max_test_duration_seconds=args.max_duration,
            hard_timeout=args.hard_timeout,
        ),
    )

    try:
        spec = load_spec(args.spec)
        report = asyncio.run(run_spec(spec, config, args.timeout, args.raw_archive))
    except LoadTestError as e:
        fail(e)
        return
    except KeyboardInterrupt:
        print("\nTest interrupted by user")
        sys.exit(1)

    print_report(report, spec.batch.aggregation_mode if spec.batch else "combined")

    if args.fail_on_assertions and not report.assertions_passed:
        sys.exit(1)


if __name__ == "__main__":
    main()
