"""``keyway doctor``: environment checks for a working Keyway setup."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any, Dict, List

from ..core.env_codec import discover_env_files
from ..errors import KeywayError
from ..utils import log_event

PASS = "pass"
WARN = "warn"
FAIL = "fail"


@dataclass
class CheckResult:
    id: str
    name: str
    status: str
    detail: str = ""


def check_auth(session) -> CheckResult:
    token = session.settings.token
    username = ""
    if not token:
        credential = session.vault.get_credential()
        if credential is None:
            return CheckResult("auth", "Authentication", WARN, "Not logged in. Run: keyway login")
        token = credential.token
        username = credential.login_handle or ""
    try:
        with session.new_client(token) as client:
            info = client.validate_token()
    except KeywayError as exc:
        return CheckResult("auth", "Authentication", WARN, f"Token expired or invalid ({exc}). Run: keyway login")
    return CheckResult("auth", "Authentication", PASS, f"Logged in as {info.username or username or 'user'}")


def check_github(session) -> CheckResult:
    if not session.git.is_repository():
        return CheckResult("github", "GitHub repository", WARN, "Not in a git repository")
    try:
        repo = session.git.detect_repo()
    except KeywayError:
        return CheckResult("github", "GitHub repository", WARN, "No GitHub remote configured")
    return CheckResult("github", "GitHub repository", PASS, repo)


def check_network(session) -> CheckResult:
    api_url = session.settings.api_url
    try:
        with session.new_client(None) as client:
            status = client.health_status()
    except KeywayError:
        return CheckResult("network", "API connectivity", WARN, "Cannot connect to API server")
    if status >= 500:
        return CheckResult("network", "API connectivity", WARN, f"Server returned {status}")
    return CheckResult("network", "API connectivity", PASS, f"Connected to {api_url}")


def check_env_file(session) -> CheckResult:
    found = discover_env_files()
    if not found:
        return CheckResult("envfile", "Environment file", WARN, "No .env file found. Run: keyway pull")
    return CheckResult("envfile", "Environment file", PASS, f"Found: {found[0].name}")


def check_gitignore(session) -> CheckResult:
    if not session.git.is_repository():
        return CheckResult("gitignore", ".gitignore", PASS, "Not in a git repository")
    if session.git.check_env_gitignore():
        return CheckResult("gitignore", ".gitignore", PASS, "Environment files are ignored")
    return CheckResult("gitignore", ".gitignore", WARN, "Missing .env patterns in .gitignore")


CHECKS = (check_auth, check_github, check_network, check_env_file, check_gitignore)


def run_checks(session, strict: bool = False) -> List[CheckResult]:
    """Run every check; with *strict* a warning counts as a failure."""

    results = [check(session) for check in CHECKS]
    if strict:
        for result in results:
            if result.status == WARN:
                result.status = FAIL
    return results


def doctor(args, session) -> Dict[str, Any]:
    ui = session.ui
    if not args.json:
        ui.intro("doctor")

    results = run_checks(session, strict=args.strict)
    summary = {status: sum(1 for result in results if result.status == status) for status in (PASS, WARN, FAIL)}
    exit_code = 1 if summary[FAIL] else 0

    if args.json:
        payload = {"checks": [asdict(result) for result in results], "summary": summary, "exitCode": exit_code}
        ui.console.print_json(json.dumps(payload))
    else:
        report = {PASS: ui.success, WARN: ui.warn, FAIL: ui.error}
        for result in results:
            report[result.status](f"{result.name}: {result.detail}")
        ui.message()
        ui.message(f"Results: {summary[PASS]} passed, {summary[WARN]} warnings, {summary[FAIL]} failed")

    return log_event(
        "doctor",
        status="success" if exit_code == 0 else "failed",
        strict=args.strict,
        exit_code=exit_code,
        **summary,
    )


__all__ = ["CHECKS", "CheckResult", "doctor", "run_checks"]
