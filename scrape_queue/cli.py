"""Command line interface for the scrape queue worker."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import ConfigurationError, WorkerConfig, load_configuration
from .factory import build_processor
from .rate_limit import DelayPolicy, FixedDelay
from .reverify import reverify_workbook
from .verification import MillionVerifierClient, verify_single_email

LOGGER = logging.getLogger(__name__)


def build_parser(prog: str | None = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description="Process queued lead scrape jobs")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g. DEBUG, INFO, WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_once = subparsers.add_parser("run-once", help="Claim and process at most one pending job")
    _add_worker_arguments(run_once)

    worker = subparsers.add_parser("worker", help="Poll the queue until interrupted")
    _add_worker_arguments(worker)
    worker.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds to sleep when the queue is empty (defaults to the configured poll interval)",
    )
    worker.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        help="Stop after this many poll cycles",
    )

    verify = subparsers.add_parser("verify-email", help="Verify a single email address")
    verify.add_argument("email", help="Address to verify")
    verify.add_argument("--api-key", required=True, help="MillionVerifier API key")

    reverify = subparsers.add_parser("reverify", help="Re-verify the emails of an existing results workbook")
    reverify.add_argument("input", help="Path to the results workbook (.xlsx)")
    reverify.add_argument("output", help="Path where the re-verified workbook should be written")
    reverify.add_argument("--api-key", required=True, help="MillionVerifier API key")
    reverify.add_argument(
        "--delay-seconds",
        type=float,
        default=0.3,
        help="Pause between verification calls",
    )
    return parser


def _add_worker_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the worker configuration file (YAML or JSON)",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Write result workbooks to this directory instead of Supabase storage",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _load_worker_config(args: argparse.Namespace) -> WorkerConfig:
    raw = load_configuration(args.config) if args.config else {}
    config = WorkerConfig.from_mapping(raw)
    if args.output_dir:
        config.output_dir = args.output_dir
    return config


def _run_once(args: argparse.Namespace) -> int:
    processor = build_processor(_load_worker_config(args))
    outcome = processor.run_once()
    if outcome is None:
        logging.info("No pending jobs.")
        return 0
    logging.info("Job %s finished with status %s", outcome.job_id, outcome.status.value)
    return 1 if outcome.error else 0


def _run_worker(args: argparse.Namespace) -> int:
    config = _load_worker_config(args)
    processor = build_processor(config)
    interval = args.interval if args.interval is not None else config.poll_interval_seconds
    try:
        outcomes = processor.run_forever(interval_seconds=interval, max_cycles=args.max_cycles)
    except KeyboardInterrupt:
        logging.info("Worker interrupted")
        return 0
    logging.info("Processed %s job(s)", len(outcomes))
    return 0


def _verify_email(args: argparse.Namespace) -> int:
    status, body = verify_single_email(args.email, args.api_key)
    print(json.dumps(body, indent=2))
    return 0 if status == 200 else 1


def _reverify(args: argparse.Namespace) -> int:
    client = MillionVerifierClient(args.api_key)
    content = reverify_workbook(
        Path(args.input),
        client,
        pacer=FixedDelay(DelayPolicy(delay_seconds=args.delay_seconds)),
    )
    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(content)
    logging.info("Re-verified workbook written to %s", output.resolve())
    return 0


_COMMANDS = {
    "run-once": _run_once,
    "worker": _run_worker,
    "verify-email": _verify_email,
    "reverify": _reverify,
}


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        return _COMMANDS[args.command](args)
    except ConfigurationError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return 2


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
