"""
Exception hierarchy for load test orchestration.

Every error carries a message plus optional context and can be turned into a
dictionary, which is what the CLI prints when it exits with an error.
"""

from typing import Any, Dict, Optional


class LoadTestError(Exception):
    """Base class for all orchestration errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured output."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ValidationError(LoadTestError):
    """Spec is missing fields required by its execution shape."""

    def __init__(self, message: str, field_name: Optional[str] = None, **context):
        if field_name:
            context["field"] = field_name
        super().__init__(message, context)
        self.field_name = field_name


class ExecutionError(LoadTestError):
    """The request executor reported a failure for a run."""


class TestTimeoutError(LoadTestError, TimeoutError):
    """A per-request or per-test ceiling was exceeded."""

    __test__ = False  # keep pytest from collecting this as a test class

    def __init__(self, message: str, timeout_seconds: Optional[float] = None):
        super().__init__(message, {"timeout_seconds": timeout_seconds})
        self.timeout_seconds = timeout_seconds


class RetryExhaustedError(LoadTestError):
    """A batch sub-test kept failing after its last retry."""

    def __init__(self, test_id: str, attempts: int, last_error: str):
        super().__init__(
            f"Test {test_id} failed after {attempts} attempt(s): {last_error}",
            {"test_id": test_id, "attempts": attempts, "last_error": last_error},
        )
        self.test_id = test_id
        self.attempts = attempts
        self.last_error = last_error


class AssertionFailure(LoadTestError):
    """
    A declared assertion did not hold.

    Only built for reporting; the evaluator records failures on its results
    and never raises this.
    """

    def __init__(self, name: str, expected: Any, actual: Any, condition: str):
        super().__init__(
            f"Assertion '{name}' failed: expected {condition} {expected!r}, "
            f"got {actual!r}",
            {
                "assertion": name,
                "condition": condition,
                "expected": expected,
                "actual": actual,
            },
        )
        self.name = name
