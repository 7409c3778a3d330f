"""Command line surface for Keyway."""

from __future__ import annotations

import argparse
from typing import Any, Callable, Dict, Optional, Sequence

from . import __version__
from .commands import diff, doctor, init, login, logout, pull, push, run, set_secret, sync
from .commands.session import Session
from .errors import APIError, KeywayError
from .utils import get_logger, log_event

Handler = Callable[[argparse.Namespace, Session], Any]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="keyway", description="Keyway secrets vault for GitHub repositories")
    parser.add_argument("--version", action="store_true", help="Display version information and exit")
    subparsers = parser.add_subparsers(dest="command")

    # Auth ---------------------------------------------------------------
    login_cmd = subparsers.add_parser("login", help="Authenticate with Keyway")
    login_cmd.add_argument(
        "--token",
        nargs="?",
        const="",
        default=None,
        help="Use a fine-grained GitHub personal access token instead of the browser flow",
    )
    subparsers.add_parser("logout", help="Forget the stored credential")

    # Secrets ------------------------------------------------------------
    subparsers.add_parser("init", help="Create the vault for the current repository")

    push_cmd = subparsers.add_parser("push", help="Upload a local env file to the vault")
    push_cmd.add_argument("-e", "--env", default=None, help="Target vault environment")
    push_cmd.add_argument("-f", "--file", default=None, help="Env file to push")
    push_cmd.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation prompt")
    push_cmd.add_argument("--prune", action="store_true", help="Remove vault secrets missing from the file")

    pull_cmd = subparsers.add_parser("pull", help="Download vault secrets into a local env file")
    pull_cmd.add_argument("-e", "--env", default=None, help="Vault environment to pull")
    pull_cmd.add_argument("-f", "--file", default=None, help="Destination env file")
    pull_cmd.add_argument("-y", "--yes", action="store_true", help="Overwrite without asking")
    pull_cmd.add_argument("--force", action="store_true", help="Replace the file instead of merging")

    diff_cmd = subparsers.add_parser("diff", help="Compare two vault environments")
    diff_cmd.add_argument("env1", nargs="?", default=None)
    diff_cmd.add_argument("env2", nargs="?", default=None)
    diff_cmd.add_argument("--json", action="store_true", help="Emit the comparison as JSON")
    diff_cmd.add_argument("--show-values", action="store_true", help="Print differing values in full")
    diff_cmd.add_argument("--keys-only", action="store_true", help="Only list differing keys")

    set_cmd = subparsers.add_parser("set", help="Add or update one secret in the vault")
    set_cmd.add_argument("key", help="Secret name, or KEY=VALUE")
    set_cmd.add_argument("value", nargs="?", default=None, help="Secret value; prompted for when omitted")
    set_cmd.add_argument("-e", "--env", default=None, help="Vault environment (default: development)")
    set_cmd.add_argument("-y", "--yes", action="store_true", help="Overwrite an existing secret without asking")

    run_cmd = subparsers.add_parser("run", help="Run a command with vault secrets injected into its environment")
    run_cmd.add_argument("-e", "--env", default=None, help="Vault environment (default: development)")
    run_cmd.add_argument("argv", nargs=argparse.REMAINDER, metavar="command", help="Command to run, after --")

    # Diagnostics ------------------------------------------------------
    doctor_cmd = subparsers.add_parser("doctor", help="Check that Keyway can run in this environment")
    doctor_cmd.add_argument("--json", action="store_true", help="Emit the check results as JSON")
    doctor_cmd.add_argument("--strict", action="store_true", help="Treat warnings as failures")

    # Providers ----------------------------------------------------------
    sync_cmd = subparsers.add_parser("sync", help="Reconcile the vault with a deployment provider")
    sync_cmd.add_argument("provider", nargs="?", default=None, help="Provider name, e.g. vercel")
    sync_cmd.add_argument("--push", action="store_true", help="Copy vault secrets to the provider")
    sync_cmd.add_argument("--pull", action="store_true", help="Copy provider secrets into the vault")
    sync_cmd.add_argument("-e", "--env", default=None, help="Vault environment")
    sync_cmd.add_argument("--provider-env", default=None, help="Provider environment")
    sync_cmd.add_argument("--project", default=None, help="Provider project id or name")
    sync_cmd.add_argument("--team", default=None, help="Provider team id or name")
    sync_cmd.add_argument("--allow-delete", action="store_true", help="Delete provider secrets missing from the vault")
    sync_cmd.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation prompt")

    return parser


HANDLERS: Dict[str, Handler] = {
    "login": login,
    "logout": logout,
    "init": init,
    "push": push,
    "pull": pull,
    "diff": diff,
    "set": set_secret,
    "run": run,
    "sync": sync,
    "doctor": doctor,
}


def _report(session: Session, exc: KeywayError) -> None:
    session.ui.error(str(exc))
    if isinstance(exc, APIError):
        if exc.is_plan_limit:
            session.ui.link("Upgrade", exc.upgrade_url)
        elif exc.is_auth_error:
            session.ui.dim("Run: keyway login")


def main(argv: Optional[Sequence[str]] = None, session: Optional[Session] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.version:
        print(f"keyway {__version__}")
        return 0
    if args.command is None:
        parser.print_help()
        return 1

    get_logger()
    session = session or Session.create()
    handler = HANDLERS[args.command]
    try:
        result = handler(args, session)
    except KeywayError as exc:
        log_event(args.command, status="error", error=str(exc))
        _report(session, exc)
        return 1
    except KeyboardInterrupt:
        session.ui.warn("Interrupted")
        return 130
    finally:
        session.close()
    if isinstance(result, dict):
        return int(result.get("exit_code", 0))
    return 0


__all__ = ["HANDLERS", "main"]
