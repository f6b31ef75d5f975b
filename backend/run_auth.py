#!/usr/bin/env python
"""
Drive the Planora auth flows from a terminal.

Usage:
    python run_auth.py signup you@example.com --first-name Ada
    python run_auth.py login you@example.com
    python run_auth.py status you@example.com
    python run_auth.py reconcile you@example.com
    python run_auth.py reset-password you@example.com

Passwords and codes are prompted for, never taken as arguments. With
--offline everything runs against in-memory stores and codes are written
to the log instead of being emailed. Nothing persists between runs, so
only signup and reset-password are available offline.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from shared.config import get_settings
from shared.exceptions import AuthErrorCode
from modules.auth import AuthResult, AuthService, ProfileFields, build_auth_service
from modules.identity.service import InMemoryIdentityProvider
from modules.onboarding.local_store import InMemoryFlagStore
from modules.onboarding.service import OnboardingReconciler
from modules.profiles.repository import InMemoryProfileStore, InMemoryTravelPreferences
from modules.sessions.service import SessionManager
from modules.verification.mailer import LoggingCodeMailer
from modules.verification.repository import InMemoryVerificationCodeStore
from modules.verification.service import VerificationCodeService

console = Console()

# Failures the user fixes by entering (or requesting) another code
CODE_ERRORS = {
    AuthErrorCode.CODE_INVALID,
    AuthErrorCode.CODE_EXPIRED,
    AuthErrorCode.CODE_ALREADY_USED,
}

# In-memory stores start empty on every run, so only these make sense offline
OFFLINE_COMMANDS = ("signup", "reset-password")


def build_offline_service() -> AuthService:
    """An AuthService wired entirely to in-memory stores."""
    settings = get_settings()
    identity = InMemoryIdentityProvider()
    profiles = InMemoryProfileStore()
    return AuthService(
        identity_provider=identity,
        session_manager=SessionManager(identity, refresh_leeway_seconds=settings.session_refresh_leeway_seconds),
        verification_service=VerificationCodeService(
            InMemoryVerificationCodeStore(),
            LoggingCodeMailer(),
            code_length=settings.verification_code_length,
            ttl_minutes=settings.verification_code_ttl_minutes,
        ),
        profile_store=profiles,
        travel_preferences=InMemoryTravelPreferences(),
        reconciler=OnboardingReconciler(identity, profiles, InMemoryFlagStore()),
        password_min_length=settings.password_min_length,
    )


def report_failure(result: AuthResult) -> None:
    console.print(f"[red]✗ {result.error.code.value}[/red]: {result.error.message}")


async def find_identity_id(service: AuthService, email: str) -> Optional[str]:
    """Log in to learn the identity id, prompting for the password."""
    password = Prompt.ask("Password", password=True)
    result = await service.login(email, password)
    if not result.ok:
        report_failure(result)
        return None
    return result.data.identity_id


async def signup(service: AuthService, args: argparse.Namespace) -> int:
    password = Prompt.ask("Choose a password", password=True)
    fields = ProfileFields(first_name=args.first_name, last_name=args.last_name)

    result = await service.initiate_signup(args.email, password, fields)
    if not result.ok:
        report_failure(result)
        return 1
    console.print(f"Code sent to [cyan]{result.data.email}[/cyan], valid until {result.data.code_expires_at:%H:%M}")

    while True:
        code = Prompt.ask("Verification code (blank to resend)", default="", show_default=False)
        if not code:
            resent = await service.resend_signup_code()
            if not resent.ok:
                report_failure(resent)
                return 1
            console.print("A new code is on its way; the previous one no longer works.")
            continue

        completed = await service.complete_signup(code)
        if completed.ok:
            break
        report_failure(completed)
        if completed.error.code not in CODE_ERRORS:
            return 1
        if completed.error.can_resend:
            console.print("Leave the code blank to get a new one.")

    outcome = completed.data
    console.print(f"[green]✓[/green] Account created for {outcome.identity.email} ({outcome.identity.id})")
    if not outcome.profile_created:
        console.print("[yellow]Profile not written yet; it will be repaired on next login.[/yellow]")
    if not outcome.logged_in:
        console.print(f"[yellow]Automatic login failed ({outcome.login_error.code.value}); please log in.[/yellow]")
        return 0

    status = await service.check_user_registration_status(outcome.identity.id)
    console.print(f"Logged in. Registration status: [bold]{status.data.status.value}[/bold]")
    return 0


async def login(service: AuthService, args: argparse.Namespace) -> int:
    identity_id = await find_identity_id(service, args.email)
    if identity_id is None:
        return 1
    session = service.session_manager.current
    console.print(f"[green]✓[/green] Logged in as {session.identity.email}, token valid until {session.expires_at:%Y-%m-%d %H:%M:%S} UTC")
    return 0


async def status(service: AuthService, args: argparse.Namespace) -> int:
    identity_id = await find_identity_id(service, args.email)
    if identity_id is None:
        return 1
    report = (await service.check_user_registration_status(identity_id)).data

    table = Table(title=f"Registration status for {args.email}")
    table.add_column("Signal", style="cyan")
    table.add_column("Value")
    table.add_row("Status", f"[bold]{report.status.value}[/bold]")
    table.add_row("Profile exists", str(report.profile_exists))
    table.add_row("Onboarding complete (profile)", str(report.onboarding_complete))
    table.add_row("Travel preferences", str(report.has_travel_preferences))
    console.print(table)
    return 0


async def reconcile(service: AuthService, args: argparse.Namespace) -> int:
    identity_id = await find_identity_id(service, args.email)
    if identity_id is None:
        return 1
    result = await service.reconcile_onboarding(identity_id)
    if not result.ok:
        report_failure(result)
        return 1

    report = result.data
    table = Table(title="Onboarding flag")
    table.add_column("Store", style="cyan")
    table.add_column("Before")
    table.add_row("identity", str(report.before.identity))
    table.add_row("profile", str(report.before.profile))
    table.add_row("local", str(report.before.local))
    console.print(table)
    if not report.writes:
        console.print("Nothing to repair.")
    for write in report.writes:
        mark = "[green]✓[/green]" if write.ok else f"[red]✗ {write.error}[/red]"
        console.print(f"{mark} {write.source.value}")
    return 0


async def reset_password(service: AuthService, args: argparse.Namespace) -> int:
    result = await service.send_password_reset(args.email)
    if not result.ok:
        report_failure(result)
        return 1
    console.print(f"If {result.data.email} has an account, a reset link is on its way.")
    return 0


COMMANDS = {
    "signup": signup,
    "login": login,
    "status": status,
    "reconcile": reconcile,
    "reset-password": reset_password,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run Planora auth flows")
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Use in-memory stores that start empty each run; codes go to the log. "
        "Only signup and reset-password are available offline",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    signup_parser = subparsers.add_parser("signup", help="Create an account with email verification")
    signup_parser.add_argument("email")
    signup_parser.add_argument("--first-name")
    signup_parser.add_argument("--last-name")
    for name in ("login", "status", "reconcile", "reset-password"):
        subparsers.add_parser(name).add_argument("email")
    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()
    if args.offline and args.command not in OFFLINE_COMMANDS:
        parser.error(f"{args.command} needs an account from an earlier run; it is not available with --offline")

    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    service = build_offline_service() if args.offline else build_auth_service(settings)
    sys.exit(asyncio.run(COMMANDS[args.command](service, args)))


if __name__ == "__main__":
    main()
