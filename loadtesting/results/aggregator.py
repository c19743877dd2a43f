"""Result aggregation and reporting."""

import pandas as pd
from typing import List, Optional

from ..core.models import AggregatedMetrics, BatchExecutionResult, BatchTestResult


class BatchResultAggregator:
    """Collects batch sub-test results and formats them as tables."""

    def __init__(self):
        self.results: List[BatchTestResult] = []

    def add_result(self, result: BatchTestResult) -> None:
        """Add a single sub-test result."""
        self.results.append(result)

    def add_results(self, results: List[BatchTestResult]) -> None:
        """Add multiple sub-test results."""
        self.results.extend(results)

    def add_batch(self, batch: BatchExecutionResult) -> None:
        """Add every sub-test result of a batch."""
        self.add_results(batch.results)

    def clear(self) -> None:
        """Clear all results."""
        self.results = []

    def to_dataframe(self) -> pd.DataFrame:
        """Convert results to pandas DataFrame."""
        data = []
        for result in self.results:
            metrics = result.metrics
            passed = sum(1 for a in result.assertions if a.passed)
            data.append({
                "Test": result.test_id,
                "Status": result.status,
                "Retries": result.retry_count,
                "Total": metrics.total_requests,
                "Success": metrics.successful_requests,
                "Failed": metrics.failed_requests,
                "Error%": f"{metrics.error_rate * 100:.2f}",
                "Avg_ms": f"{metrics.response_time.avg:.2f}",
                "P50_ms": f"{metrics.response_time.p50:.2f}",
                "P95_ms": f"{metrics.response_time.p95:.2f}",
                "P99_ms": f"{metrics.response_time.p99:.2f}",
                "RPS": f"{metrics.throughput.requests_per_second:.2f}",
                "Assertions": f"{passed}/{len(result.assertions)}",
            })
        return pd.DataFrame(data)

    def to_csv(self, path: str) -> None:
        """Export to CSV file."""
        self.to_dataframe().to_csv(path, index=False)

    def get_tsv_string(self) -> str:
        """Get results as TSV string for easy copy/paste to spreadsheet."""
        return self.to_dataframe().to_csv(sep="\t", index=False)

    def print_summary_table(
        self,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        """Print formatted summary table to console."""
        if not self.results:
            print("No results to display.")
            return

        print()
        print("=" * 100)
        print((title or "BATCH RESULTS SUMMARY").center(100))
        print("=" * 100)

        if description:
            print(description)
            print("-" * 100)

        print(self.to_dataframe().to_string(index=False))

        print()
        print("=" * 100)
        print("TSV OUTPUT (copy to spreadsheet):")
        print("=" * 100)
        print(self.get_tsv_string())
        print("=" * 100)

    def print_single_result(self, result: BatchTestResult) -> None:
        """Print a single sub-test result."""
        metrics = result.metrics
        print(f"\nResults for {result.test_name or result.test_id} ({result.status}):")
        print(f"  Throughput: {metrics.throughput.requests_per_second:.2f} req/s")
        print(f"  Avg Latency: {metrics.response_time.avg:.2f}ms")
        print(f"  P95 Latency: {metrics.response_time.p95:.2f}ms")
        print(f"  Error Rate: {metrics.error_rate * 100:.2f}%")
        if result.error:
            print(f"  Error: {result.error}")


def print_metrics(metrics: AggregatedMetrics, title: str = "LOAD TEST RESULTS") -> None:
    """Print aggregated metrics in a formatted way."""
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)
    print(f"Total Requests:      {metrics.total_requests}")
    print(f"Successful Requests: {metrics.successful_requests}")
    print(f"Failed Requests:     {metrics.failed_requests}")
    print(f"Error Rate:          {metrics.error_rate * 100:.2f}%")
    print()
    print("LATENCY STATISTICS (ms)")
    print("-" * 30)
    print(f"Average:             {metrics.response_time.avg:.2f}")
    print(f"Minimum:             {metrics.response_time.min:.2f}")
    print(f"Maximum:             {metrics.response_time.max:.2f}")
    print(f"50th Percentile:     {metrics.response_time.p50:.2f}")
    print(f"95th Percentile:     {metrics.response_time.p95:.2f}")
    print(f"99th Percentile:     {metrics.response_time.p99:.2f}")
    print()
    print("THROUGHPUT")
    print("-" * 30)
    print(f"Actual Throughput:   {metrics.throughput.requests_per_second:.2f} requests/second")
    print("=" * 60)
