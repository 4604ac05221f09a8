"""
AutoMatch CLI - trigger matching runs from the command line.

Usage:
    python -m automatch [command] [options]

Commands:
    run         Run one matching / auto-apply batch
    stats       Show evaluation ledger statistics
    show-run    Show a stored run summary

Examples:
    python -m automatch run --batch-size 20 --jobs 5
    python -m automatch run --retries 3
    python -m automatch show-run 1b7c...
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from automatch.core.config import log_level
from automatch.core.errors import MatchingError
from automatch.db import crud
from automatch.db.session import session_scope
from automatch.pipeline.ledger import EvaluationLedger
from automatch.pipeline.orchestrator import run_matching, run_with_retry
from automatch.pipeline.state import RunSummary

logger = logging.getLogger("automatch.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="automatch",
        description="AutoMatch - candidate/job matching with safe auto-apply",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: $LOG_LEVEL or INFO)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run one matching batch")
    run_parser.add_argument("--batch-size", type=int, help="Candidates to embed per run (jobs get 2x)")
    run_parser.add_argument("--candidates-per-job", type=int, help="Max unevaluated candidates per job")
    run_parser.add_argument("--jobs", type=int, help="Max open jobs per run")
    run_parser.add_argument("--retries", type=int, default=1, help="Attempts for a failed run (default: 1)")

    subparsers.add_parser("stats", help="Show evaluation ledger statistics")

    show_parser = subparsers.add_parser("show-run", help="Show a stored run summary")
    show_parser.add_argument("run_id", help="Run id")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=(args.log_level or log_level()).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == "run":
            return cmd_run(args)
        elif args.command == "stats":
            return cmd_stats(args)
        elif args.command == "show-run":
            return cmd_show_run(args)
        parser.print_help()
        return 1
    except KeyboardInterrupt:
        print("\n\nOperation cancelled.")
        return 1
    except MatchingError as e:
        print(f"\nError: {e}")
        return 1


def cmd_run(args) -> int:
    """Execute run command."""
    options = {
        "embedding_batch_size": args.batch_size,
        "candidates_per_job": args.candidates_per_job,
        "jobs_per_run": args.jobs,
    }
    if args.retries and args.retries > 1:
        summary = run_with_retry(options, max_attempts=args.retries)
    else:
        summary = run_matching(options)

    out = summary.to_dict()
    print(json.dumps(
        {
            "runId": out["runId"],
            "status": out["status"],
            "matchesFound": out["matchesFound"],
            "applicationsSubmitted": out["applicationsSubmitted"],
            "jobsProcessed": out["jobsProcessed"],
            "errors": out["errors"],
        },
        indent=2,
    ))
    return 0 if not summary.failed else 1


def cmd_stats(args) -> int:
    with session_scope() as s:
        stats = EvaluationLedger(s).stats()
    print(json.dumps(stats.to_dict(), indent=2))
    return 0


def cmd_show_run(args) -> int:
    with session_scope() as s:
        row = crud.get_run(s, args.run_id)
        if row is None:
            print(f"Run not found: {args.run_id}")
            return 1
        summary = RunSummary.from_record(row)
    print(json.dumps(summary.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
