"""CLI for executor selection."""

import argparse
import json

from ..core.exceptions import ValidationError
from ..core.selector import select_executor
from .common import fail, load_spec


def main():
    """Main entry point for select CLI."""
    parser = argparse.ArgumentParser(
        description="Show which execution strategy a load test spec would use"
    )
    parser.add_argument("spec", type=str, help="Path to a JSON load test spec")
    args = parser.parse_args()

    try:
        result = select_executor(load_spec(args.spec))
    except ValidationError as e:
        fail(e)
        return

    print(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    main()
