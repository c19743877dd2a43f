"""Main entry point for the loadtesting package.

Usage:
    python -m loadtesting select spec.json
    python -m loadtesting schedule --pattern spike --requests 100 --duration 30
    python -m loadtesting run spec.json --concurrency 4 --raw-archive samples.jsonl
"""

import sys


def main():
    """Main entry point that dispatches to subcommands."""
    if len(sys.argv) < 2:
        print_help()
        sys.exit(1)

    command = sys.argv[1]

    if command in ["-h", "--help", "help"]:
        print_help()
        sys.exit(0)

    # Remove the command from argv so subcommand parsers see correct args
    sys.argv = [sys.argv[0]] + sys.argv[2:]

    if command == "select":
        from .cli.select import main as select_main

        select_main()
    elif command == "schedule":
        from .cli.schedule import main as schedule_main

        schedule_main()
    elif command == "run":
        from .cli.run import main as run_main

        run_main()
    else:
        print(f"Unknown command: {command}")
        print_help()
        sys.exit(1)


def print_help():
    """Print help message."""
    print(
        """Load Test Orchestration Engine

Usage: python -m loadtesting <command> [options]

Commands:
    select        Show which execution strategy a spec would use
    schedule      Print the dispatch schedule for a load pattern
    run           Run a spec (requests, workflow or batch) against its targets

Examples:
    # Explain the strategy chosen for a spec
    python -m loadtesting select spec.json

    # Preview a spike schedule for 100 requests over 30 seconds
    python -m loadtesting schedule --pattern spike --requests 100 --duration 30

    # Run a batch spec two sub-tests at a time and keep the raw samples
    python -m loadtesting run batch.json --concurrency 2 --raw-archive samples.jsonl

For command-specific help:
    python -m loadtesting <command> --help
"""
    )


if __name__ == "__main__":
    main()
