"""Result tables and raw sample archives."""

from .aggregator import BatchResultAggregator, print_metrics
from .archive import export_samples, load_samples

__all__ = ["BatchResultAggregator", "print_metrics", "export_samples", "load_samples"]
