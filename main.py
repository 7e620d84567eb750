"""
MedClinic Command-Line Client Entry Point.

Bootstraps the dependency graph through ``create_app_context`` and runs
one command against the clinic backend.  Results are printed as JSON on
stdout; logs go to stderr.

Usage::

    python main.py login --email ana@clinic.test
    python main.py status
    python main.py get patients --cache
    python main.py routes
    python main.py logout
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import sys
from typing import Any, Optional, Sequence

from medclinic.bootstrap import AppContext, create_app_context
from medclinic.errors import ApiError
from medclinic.models.service_models import RequestConfig


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="medclinic",
        description="Command-line client for the clinic management backend.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    login = commands.add_parser("login", help="Authenticate and store the session.")
    login.add_argument("--email", required=True)
    login.add_argument("--password", help="Prompted for when omitted.")

    commands.add_parser("logout", help="Clear the stored session.")
    commands.add_parser("status", help="Show the restored session state.")

    get = commands.add_parser("get", help="GET a backend path as the current user.")
    get.add_argument("path", help="Resource path, e.g. 'patients' or 'doctors/3'.")
    get.add_argument("--cache", action="store_true", help="Serve from the read cache.")

    commands.add_parser("routes", help="List the screens the current user can open.")
    return parser


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + "\n")


async def _run(ctx: AppContext, args: argparse.Namespace) -> int:
    session = ctx.session

    if args.command == "login":
        password = args.password or getpass.getpass("Password: ")
        response = await ctx.services["auth_service"].login(args.email, password)
        _emit({"authenticated": True, "role": response.role.value, "user_id": response.id})
        return 0

    state = session.check_auth_status()

    if args.command == "logout":
        ctx.services["auth_service"].logout()
        _emit({"authenticated": False})
        return 0

    if args.command == "status":
        _emit(
            {
                "status": state.status.value,
                "authenticated": state.is_authenticated,
                "role": state.role.value if state.role else None,
                "user_id": state.user_id,
            }
        )
        return 0

    if args.command == "routes":
        _emit(
            [
                {"path": route.pattern, "title": route.title}
                for route in ctx.guard.navigation()
            ]
        )
        return 0

    # get
    if not state.is_authenticated:
        _emit({"error": "Not logged in.", "redirect_to": ctx.config.LOGIN_PATH})
        return 1
    data = await ctx.gateway.get(args.path, config=RequestConfig(cache=args.cache))
    _emit(data)
    return 0


async def _main_async(args: argparse.Namespace) -> int:
    ctx = create_app_context(watch_storage=False)
    try:
        return await _run(ctx, args)
    except ApiError as exc:
        _emit(
            {
                "error": exc.user_message(exc.message),
                "kind": exc.kind.value,
                "http_status": exc.http_status,
            }
        )
        return 1
    finally:
        await ctx.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse *argv*, run the command and return the process exit code."""
    args = _build_parser().parse_args(argv)
    return asyncio.run(_main_async(args))


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
