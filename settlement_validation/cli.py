"""Command line entry point.

    settlement-validate e2e   [--base-url URL] [--screenshot-dir DIR] [--headed] [--verbose]
    settlement-validate roles [--base-url URL] [--report-dir DIR] [--parallel] [--headed] [--verbose]

The JSON report is printed between literal start/end markers. The process
exits with 0 when every step passed and 1 otherwise, including runs that
failed before any step could execute.
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

import anyio

from settlement_validation.config import ValidationConfig
from settlement_validation.flows.end_to_end import EndToEndFlow
from settlement_validation.flows.roles import run_roles, run_tag
from settlement_validation.report import (
    ROLE_REPORT_END,
    ROLE_REPORT_START,
    VALIDATION_END,
    VALIDATION_START,
    emit,
    exit_code,
    fatal_report,
    write_report,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="settlement-validate",
        description="Black-box validation of the settlement dashboard and its backend",
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--base-url", default=None, help="Backend base URL (default: $BASE_URL or http://localhost:8080)")
    common.add_argument("--headed", action="store_true", help="Show the browser window")
    common.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    e2e = sub.add_parser("e2e", parents=[common], help="Run the eight-step end-to-end flow")
    e2e.add_argument("--screenshot-dir", default=None, help="Where step screenshots are written (default: $SCREENSHOT_DIR)")

    roles = sub.add_parser("roles", parents=[common], help="Run the admin and user role flows")
    roles.add_argument("--report-dir", default=None, help="Where screenshots and the JSON report go (default: $REPORT_DIR)")
    roles.add_argument("--parallel", action="store_true", help="Run both role sessions concurrently")
    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


async def run_e2e_command(config: ValidationConfig) -> int:
    flow = EndToEndFlow(config)
    try:
        report = await flow.run()
    except Exception as exc:  # noqa: BLE001 - turned into the fatal report
        logger.error("End-to-end flow aborted: %s", exc)
        emit(fatal_report(exc, flow.runner.results, flow.screenshot_paths()), VALIDATION_START, VALIDATION_END)
        return exit_code(False)

    emit(report.to_dict(), VALIDATION_START, VALIDATION_END)
    return exit_code(report.passed)


async def run_roles_command(config: ValidationConfig, parallel: bool) -> int:
    tag = run_tag()
    try:
        combined = await run_roles(config, parallel=parallel, tag=tag)
        data = combined.to_dict()
        path = write_report(data, config.report_dir / f"role-validation-{tag}.json")
    except Exception as exc:  # noqa: BLE001 - turned into the fatal report
        logger.error("Role validation aborted: %s", exc)
        emit(fatal_report(exc), ROLE_REPORT_START, ROLE_REPORT_END)
        return exit_code(False)

    output: Dict[str, Any] = {"reportFile": str(path), **data}
    emit(output, ROLE_REPORT_START, ROLE_REPORT_END)
    return exit_code(combined.overall_pass)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = ValidationConfig(
            base_url=args.base_url,
            screenshot_dir=getattr(args, "screenshot_dir", None),
            report_dir=getattr(args, "report_dir", None),
            headless=False if args.headed else None,
        )
    except ValueError as exc:
        print(f"[CONFIG] ERROR: {exc}", file=sys.stderr)
        return exit_code(False)
    print(config.describe(), file=sys.stderr)

    if args.command == "e2e":
        return anyio.run(run_e2e_command, config)
    return anyio.run(run_roles_command, config, args.parallel)


if __name__ == "__main__":
    sys.exit(main())
