# orbit_cli/cli.py
"""
CLI registry and dispatcher for Orbit ABM operational commands.
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Callable, Dict, Optional
from uuid import UUID

from orbit_cli.verification import (
    check_api_health,
    check_environment,
    issue_token,
    run_export,
    run_import,
    run_purge_audit_logs,
)


# Output formatting utilities
def _supports_color() -> bool:
    """Check if terminal supports ANSI color codes."""
    if sys.platform == "win32":
        return os.getenv("TERM") == "xterm" or os.getenv("ANSICON") is not None
    return sys.stdout.isatty()


SUPPORTS_COLOR = _supports_color()

GREEN = '\033[92m' if SUPPORTS_COLOR else ''
RED = '\033[91m' if SUPPORTS_COLOR else ''
YELLOW = '\033[93m' if SUPPORTS_COLOR else ''
BLUE = '\033[94m' if SUPPORTS_COLOR else ''
RESET = '\033[0m' if SUPPORTS_COLOR else ''


def print_success(message: str):
    """Print success message with [✓] symbol."""
    print(f"{GREEN}[✓]{RESET} {message}")


def print_error(message: str):
    """Print error message with [✗] symbol."""
    print(f"{RED}[✗]{RESET} {message}")


def print_warning(message: str):
    """Print warning message with [!] symbol."""
    print(f"{YELLOW}[!]{RESET} {message}")


def print_info(message: str):
    """Print info message with [i] symbol."""
    print(f"{BLUE}[i]{RESET} {message}")


# Command functions
async def cmd_check_env(args: argparse.Namespace) -> int:
    """Command: Validate environment configuration."""
    print_info("Checking environment configuration...")
    result = check_environment()

    print_info(f"  Database: {result.data['database']}")
    for name, enabled in result.data["features"].items():
        print_info(f"  Feature {name}: {'on' if enabled else 'off'}")
    for warning in result.data["warnings"]:
        print_warning(warning)
    for error in result.data["errors"]:
        print_error(error)

    if result.success:
        print_success(result.message)
        return 0
    print_error(result.message)
    return 1


async def cmd_health(args: argparse.Namespace) -> int:
    """Command: Query the API health endpoint."""
    print_info(f"Checking API health at {args.api_url}...")
    result = await check_api_health(api_url=args.api_url)

    for name, status in result.data.get("checks", {}).items():
        if status in ("healthy", "disabled"):
            print_success(f"{name}: {status}")
        else:
            print_error(f"{name}: {status}")

    if result.success:
        print_success(result.message)
        return 0
    print_error(result.message)
    return 1


async def cmd_import(args: argparse.Namespace) -> int:
    """Command: Import a CSV/XLSX file."""
    print_info(f"Importing {args.entity} from {args.file} ({args.mode} mode)...")
    result = await run_import(args.entity, Path(args.file), args.org_id, mode=args.mode)

    for name in result.data.get("markets_created", []):
        print_info(f"  Market created: {name}")
    for name in result.data.get("verticals_created", []):
        print_info(f"  Vertical created: {name}")
    if result.data.get("protected_skipped"):
        print_warning(f"  {result.data['protected_skipped']} in-use record(s) skipped")
    for error in result.data.get("errors", []):
        print_warning(f"  {error}")

    if result.success:
        print_success(result.message)
        return 0
    print_error(result.message)
    return 1


async def cmd_export(args: argparse.Namespace) -> int:
    """Command: Export records to CSV."""
    print_info(f"Exporting {args.entity}...")
    output = Path(args.output) if args.output else None
    result = await run_export(args.entity, args.org_id, output=output)

    if result.success:
        print_success(result.message)
        return 0
    print_error(result.message)
    return 1


async def cmd_issue_token(args: argparse.Namespace) -> int:
    """Command: Mint a development access token."""
    result = issue_token(
        args.user_id,
        args.org_id,
        role=args.role,
        email=args.email,
        platform_role=args.platform_role,
        expires_minutes=args.expires_minutes,
    )

    if result.success:
        print_success(result.message)
        print(result.data["token"])
        return 0
    print_error(result.message)
    return 1


async def cmd_purge_audit_logs(args: argparse.Namespace) -> int:
    """Command: Delete audit entries past the retention window."""
    result = await run_purge_audit_logs(args.days)

    if result.success:
        print_success(result.message)
        return 0
    print_error(result.message)
    return 1


# Command registry
COMMANDS: Dict[str, Callable] = {
    'check-env': cmd_check_env,
    'health': cmd_health,
    'import': cmd_import,
    'export': cmd_export,
    'issue-token': cmd_issue_token,
    'purge-audit-logs': cmd_purge_audit_logs,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        prog='orbit-cli',
        description='Orbit ABM CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    subparsers.add_parser('check-env', help='Validate environment configuration')

    health_parser = subparsers.add_parser('health', help='Check API health')
    health_parser.add_argument('--api-url', default='http://localhost:8000', help='API URL')

    import_parser = subparsers.add_parser('import', help='Import a CSV/XLSX file')
    import_parser.add_argument('entity', choices=['companies', 'contacts', 'markets', 'verticals'])
    import_parser.add_argument('file', help='Path to a .csv or .xlsx file')
    import_parser.add_argument('--org-id', type=UUID, required=True, help='Organization ID')
    import_parser.add_argument('--mode', choices=['append', 'overwrite'], default='append')

    export_parser = subparsers.add_parser('export', help='Export records to CSV')
    export_parser.add_argument('entity', choices=['companies', 'contacts', 'markets'])
    export_parser.add_argument('--org-id', type=UUID, required=True, help='Organization ID')
    export_parser.add_argument('--output', help='Output path (default: {entity}_{slug}_{date}.csv)')

    token_parser = subparsers.add_parser('issue-token', help='Mint a development access token')
    token_parser.add_argument('--user-id', type=UUID, required=True, help='Profile ID')
    token_parser.add_argument('--org-id', type=UUID, required=True, help='Organization ID')
    token_parser.add_argument('--role', choices=['admin', 'manager', 'viewer'], default='admin')
    token_parser.add_argument('--email', default=None)
    token_parser.add_argument('--platform-role', default=None)
    token_parser.add_argument('--expires-minutes', type=int, default=None)

    purge_parser = subparsers.add_parser('purge-audit-logs', help='Delete audit log entries past retention')
    purge_parser.add_argument('--days', type=int, default=None, help='Retention in days (default: AUDIT_LOG_RETENTION_DAYS)')

    return parser


def main(args: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    command_func = COMMANDS.get(parsed_args.command)
    if not command_func:
        print_error(f"Unknown command: {parsed_args.command}")
        parser.print_help()
        return 1

    try:
        return asyncio.run(command_func(parsed_args))
    except KeyboardInterrupt:
        print_error("\nInterrupted by user")
        return 130
    except Exception as e:
        print_error(f"Error executing command: {str(e)}")
        if os.getenv('DEBUG'):
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
