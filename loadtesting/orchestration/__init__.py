"""Runners, batch scheduling and strategy dispatch."""

from .pattern_runner import PatternRunner
from .workflow_runner import WorkflowRunner
from .batch_scheduler import BatchScheduler, execute_batch
from .orchestrator import LoadTestOrchestrator, LoadTestReport

__all__ = [
    "PatternRunner",
    "WorkflowRunner",
    "BatchScheduler",
    "execute_batch",
    "LoadTestOrchestrator",
    "LoadTestReport",
]
