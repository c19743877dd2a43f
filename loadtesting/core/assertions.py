"""
Pass/fail assertions over aggregated metrics.

Every assertion is evaluated independently and produces an AssertionResult;
a failing or malformed assertion never stops the others and never raises.
"""

import ast
import logging
import math
import operator
import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from .exceptions import AssertionFailure, ValidationError
from .models import AggregatedMetrics, Assertion, AssertionResult

logger = logging.getLogger(__name__)

# Placeholder in a custom expression -> name it is bound to
PLACEHOLDERS = {
    "responseTime": "response_time",
    "successRate": "success_rate",
    "throughput": "throughput",
    "errorRate": "error_rate",
}

_PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")

# JavaScript spellings accepted in custom expressions
_JS_ALIASES = (
    (re.compile(r"==="), "=="),
    (re.compile(r"!=="), "!="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
)

_BINARY_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: Dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

_COMPARE_OPS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
}

MAX_EXPONENT = 100


class SafeExpression:
    """
    Tiny arithmetic/comparison evaluator for custom assertions.

    Supports numeric literals, the four metric placeholders, + - * / % **,
    unary + - not, comparisons and and/or. Anything else (calls, attribute
    access, subscripts, strings) is rejected with a ValidationError.

        SafeExpression("{{responseTime}} < 200 && {{errorRate}} === 0")
    """

    def __init__(self, source: str):
        self.source = source
        self._tree = self._parse(source)

    @staticmethod
    def _translate(source: str) -> str:
        def replace(match: "re.Match") -> str:
            name = match.group(1)
            if name not in PLACEHOLDERS:
                raise ValidationError(
                    f"Unknown placeholder '{{{{{name}}}}}' in custom expression",
                    field_name="customExpression",
                )
            return PLACEHOLDERS[name]

        text = _PLACEHOLDER_RE.sub(replace, source)
        for pattern, replacement in _JS_ALIASES:
            text = pattern.sub(replacement, text)
        return text.strip()

    def _parse(self, source: str) -> ast.Expression:
        if not source or not source.strip():
            raise ValidationError("Custom expression is empty", field_name="customExpression")
        try:
            return ast.parse(self._translate(source), mode="eval")
        except SyntaxError as e:
            raise ValidationError(
                f"Invalid custom expression '{source}': {e.msg}",
                field_name="customExpression",
            ) from e

    def evaluate(self, variables: Dict[str, float]) -> Any:
        """Evaluate against metric values keyed by placeholder binding name."""
        return self._eval(self._tree.body, variables)

    def _eval(self, node: ast.AST, variables: Dict[str, float]) -> Any:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, (bool, int, float)):
                return node.value
            raise self._reject(node)

        if isinstance(node, ast.Name):
            if node.id in variables:
                return variables[node.id]
            if node.id in ("true", "false"):
                return node.id == "true"
            raise self._reject(node, f"unknown name '{node.id}'")

        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
            left = self._eval(node.left, variables)
            right = self._eval(node.right, variables)
            if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
                raise self._reject(node, "exponent too large")
            return _BINARY_OPS[type(node.op)](left, right)

        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
            return _UNARY_OPS[type(node.op)](self._eval(node.operand, variables))

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                result = True
                for value in node.values:
                    result = self._eval(value, variables)
                    if not result:
                        return result
                return result
            result = False
            for value in node.values:
                result = self._eval(value, variables)
                if result:
                    return result
            return result

        if isinstance(node, ast.Compare):
            left = self._eval(node.left, variables)
            for op, comparator in zip(node.ops, node.comparators):
                if type(op) not in _COMPARE_OPS:
                    raise self._reject(node)
                right = self._eval(comparator, variables)
                if not _COMPARE_OPS[type(op)](left, right):
                    return False
                left = right
            return True

        raise self._reject(node)

    def _reject(self, node: ast.AST, detail: Optional[str] = None) -> ValidationError:
        what = detail or f"{type(node).__name__} is not allowed"
        return ValidationError(
            f"Unsupported custom expression '{self.source}': {what}",
            field_name="customExpression",
        )


def metric_values(metrics: AggregatedMetrics) -> Dict[str, float]:
    """Values bound to the custom expression placeholders."""
    return {
        "response_time": metrics.response_time.avg,
        "success_rate": metrics.success_rate,
        "throughput": metrics.throughput.requests_per_second,
        "error_rate": metrics.error_rate,
    }


def actual_value(assertion: Assertion, metrics: AggregatedMetrics) -> Any:
    """Metric an assertion checks; custom expressions are evaluated here."""
    if assertion.type == "custom":
        return SafeExpression(assertion.custom_expression or "").evaluate(
            metric_values(metrics)
        )
    values = metric_values(metrics)
    return values.get(assertion.type, 0)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


def check_condition(
    condition: str, actual: Any, expected: Any, tolerance: Optional[float] = None
) -> bool:
    """Apply a condition; equals/not_equals compare within tolerance."""
    tolerance = tolerance or 0
    if condition == "less_than":
        return actual < expected
    if condition == "greater_than":
        return actual > expected
    if condition == "equals":
        return abs(actual - expected) <= tolerance
    if condition == "not_equals":
        return abs(actual - expected) > tolerance
    if condition == "contains":
        return _stringify(expected) in _stringify(actual)
    raise ValidationError(f"Unknown assertion condition '{condition}'", field_name="condition")


def evaluate_assertion(assertion: Assertion, metrics: AggregatedMetrics) -> AssertionResult:
    result = AssertionResult(
        name=assertion.name,
        type=assertion.type,
        condition=assertion.condition,
        expected_value=assertion.expected_value,
        actual_value=None,
        passed=False,
        tolerance=assertion.tolerance,
    )
    try:
        result.actual_value = actual_value(assertion, metrics)
        result.passed = bool(
            check_condition(
                assertion.condition,
                result.actual_value,
                assertion.expected_value,
                assertion.tolerance,
            )
        )
    except ValidationError as e:
        result.error = e.message
    except (TypeError, ValueError, ArithmeticError) as e:
        result.error = f"Could not evaluate assertion: {e}"

    if result.error:
        logger.warning(f"Assertion '{assertion.name}' could not be evaluated: {result.error}")
    return result


def run_assertions(
    assertions: Sequence[Assertion], metrics: AggregatedMetrics
) -> List[AssertionResult]:
    """Evaluate every assertion against metrics, in declaration order."""
    return [evaluate_assertion(assertion, metrics) for assertion in assertions]


def failures_of(results: Sequence[AssertionResult]) -> List[AssertionFailure]:
    """Failed results as AssertionFailure objects, for reporting."""
    return [
        AssertionFailure(r.name, r.expected_value, r.actual_value, r.condition)
        for r in results
        if not r.passed
    ]
