"""crm-pilot command line entry point.

Runs named operations against the local store, mostly for scripting and
for checking a deployment.

Usage:
    crmpilot --status                     # Service readiness report
    crmpilot --list-actions               # Registered operations
    crmpilot run daily_program            # Run one operation
    crmpilot run lead_scoring --params '{"account_name": "Acme"}'
"""

import argparse
import asyncio
import json
import logging
from typing import Any, Optional

from crmpilot import __version__
from crmpilot.core.config import get_config, validate_config
from crmpilot.core.logging import get_logger, setup_logging


def _parse_params(text: Optional[str]) -> dict[str, Any]:
    if not text:
        return {}
    params = json.loads(text)
    if not isinstance(params, dict):
        raise ValueError("--params must be a JSON object")
    return params


async def _run(name: str, params: dict[str, Any], user: Optional[str]) -> dict[str, Any]:
    from crmpilot.actions.dispatcher import ActionDispatcher
    from crmpilot.db.database import Database
    from crmpilot.engine.data_access import DataAccess
    from crmpilot.integrations.offline import get_outlook_client

    db = Database()
    db.initialize()
    try:
        dispatcher = ActionDispatcher(DataAccess(db, get_outlook_client()))
        result = await dispatcher.execute(name, params, user=user)
        return result.to_dict()
    finally:
        db.close()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crmpilot",
        description="crm-pilot - CRM decision support engine",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument(
        "--status",
        action="store_true",
        help="Show service readiness report and exit",
    )
    parser.add_argument(
        "--list-actions",
        action="store_true",
        help="List registered operations and exit",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")
    run = subparsers.add_parser("run", help="Execute one operation")
    run.add_argument("action", help="Operation name")
    run.add_argument("--params", help="Parameters as a JSON object")
    run.add_argument("--user", help="Act as this user instead of the configured one")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for crm-pilot.

    Returns:
        Exit code (0 = success, non-zero = error)
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"crm-pilot v{__version__}")
        return 0

    config = get_config()
    setup_logging(config.log_path, console_level=logging.DEBUG if args.debug else logging.WARNING)
    logger = get_logger("main")

    issues = validate_config(config)
    for issue in issues:
        logger.warning(f"Configuration issue: {issue}")

    if args.status:
        from crmpilot.core.services import get_service_registry

        report = get_service_registry().readiness_report()
        print(f"\ncrm-pilot v{__version__} - Service Readiness\n")
        print(report.summary)
        if issues:
            print(f"\nConfiguration issues ({len(issues)}):")
            for issue in issues:
                print(f"  ! {issue}")
        print()
        return 0

    if args.list_actions:
        from crmpilot.actions.dispatcher import HANDLER_MODULES
        from crmpilot.actions.registry import build_registry

        for spec in build_registry(HANDLER_MODULES).describe():
            print(f"{spec['name']:24s} [{spec['group']}] {spec['description']}")
        return 0

    if args.command != "run":
        parser.print_help()
        return 2

    try:
        params = _parse_params(args.params)
    except ValueError as e:
        print(f"Invalid parameters: {e}")
        return 2

    try:
        result = asyncio.run(_run(args.action, params, args.user))
    except Exception as e:
        logger.error(f"Failed to run {args.action}: {e}", exc_info=True)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0 if result["success"] else 1
