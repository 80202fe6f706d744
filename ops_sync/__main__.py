"""
Command line entry point

    python -m ops_sync download   # fetch files from every business-unit server
    python -m ops_sync load       # transform + merge into the database
    python -m ops_sync run        # download, then load

Ctrl+C requests cancellation; the current unit stops cleanly.
"""

import argparse
import logging
import sys
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path
from typing import Dict, Optional, Sequence

from .config import load_config
from .models import ProgressEvent, RunOutcome, RunResult
from .pipeline import SyncPipeline
from .utils.cancellation import CancellationToken


def configure_logging(verbosity: int) -> None:
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                        force=True)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ops_sync",
        description="Download business-unit exports over SFTP and load them into the OPS database.",
    )
    parser.add_argument("action", choices=SyncPipeline.ACTIONS, help="Phase(s) to run.")
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML or JSON settings file (default: $OPS_CONFIG, else environment only).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (repeatable).",
    )
    return parser.parse_args(argv)


def print_progress(event: ProgressEvent) -> None:
    bar = "#" * (event.global_percent // 5)
    print(f"\r[{bar:<20}] {event.global_percent:3d}% {event.message}"[:120], end="", flush=True)
    if event.global_percent >= 100:
        print()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    pipeline = SyncPipeline(load_config(args.config))
    pipeline.notifier.progress_channel.subscribe(print_progress)

    token = CancellationToken()
    future = pipeline.start(args.action, token)
    try:
        while True:
            try:
                outcome = future.result(timeout=0.5)
                break
            except FutureTimeout:
                continue
            except KeyboardInterrupt:
                print("\nCancelling...")
                token.cancel()
    finally:
        pipeline.shutdown()

    results: Dict[str, RunResult] = outcome if isinstance(outcome, dict) else {args.action: outcome}
    exit_code = 0
    for phase, result in results.items():
        print(f"{phase}: {result.status} - {result.message}")
        for warning in result.warnings:
            print(f"   ⚠️ {warning}")
        if result.outcome == RunOutcome.FAILED:
            exit_code = 1
        elif result.outcome == RunOutcome.CANCELLED and exit_code == 0:
            exit_code = 130
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
