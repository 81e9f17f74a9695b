"""
Command-line interface for data verification.

Compares a table between a base and a target database on one SQL engine,
partition by partition, and records every outcome in the result store.

Available commands:
- verify: Verify one table (exit code 0/1/2)
- batch: Verify many tables with FAST-to-DETAILED escalation
- schedule: Run batches periodically
- results: Summarize stored outcomes
"""

import sys

from utils.logging import configure_from_env, shutdown_logging
from utils.tracing import initialize_tracing, shutdown_tracing

from .commands import cmd_batch, cmd_results, cmd_schedule, cmd_verify
from .credentials import resolve_config
from .parser import create_parser

COMMANDS = {
    "verify": cmd_verify,
    "batch": cmd_batch,
    "schedule": cmd_schedule,
    "results": cmd_results,
}


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the verify-data CLI"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command not in COMMANDS:
        parser.print_help()
        sys.exit(1)

    if args.command in ("batch", "schedule") and not args.tables and not args.tables_file:
        parser.error("Either --tables or --tables-file is required")

    configure_from_env(level=args.log_level)
    initialize_tracing()

    try:
        exit_code = COMMANDS[args.command](args)
    finally:
        shutdown_tracing()
        shutdown_logging()

    sys.exit(exit_code)


__all__ = [
    "main",
    "create_parser",
    "resolve_config",
    "cmd_verify",
    "cmd_batch",
    "cmd_schedule",
    "cmd_results",
]


if __name__ == "__main__":
    main()
