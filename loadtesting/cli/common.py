"""Helpers shared by the CLI commands."""

import json
import sys
from pathlib import Path

from ..core.exceptions import LoadTestError, ValidationError
from ..core.models import LoadTestSpec


def load_spec(path: str) -> LoadTestSpec:
    """Read a JSON spec file."""
    spec_path = Path(path)
    if not spec_path.exists():
        raise ValidationError(f"Spec file '{path}' does not exist", field_name="spec")
    try:
        data = json.loads(spec_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"Spec file '{path}' is not valid JSON: {e}", field_name="spec") from e
    if not isinstance(data, dict):
        raise ValidationError(f"Spec file '{path}' must contain a JSON object", field_name="spec")
    return LoadTestSpec.from_dict(data)


def fail(error: LoadTestError) -> None:
    """Print a structured error to stderr and exit 1."""
    print(json.dumps(error.to_dict(), indent=2, default=str), file=sys.stderr)
    sys.exit(1)
