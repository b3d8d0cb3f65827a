"""CLI entrypoints for account provisioning and confirmation tasks."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence

import uvicorn

from account_service.config import configure_structlog, get_settings
from account_service.core.errors import InvalidInputError
from account_service.core.links import RouteLinkBuilder
from account_service.db.session import dispose_engine, get_session_factory
from account_service.services.confirmation_service import ConfirmationService
from account_service.services.identity_store import SqlAlchemyIdentityStore
from account_service.services.notifications import get_notification_sender


async def _run_create_user(email: str) -> int:
    """Provision an unconfirmed account."""
    settings = get_settings()
    try:
        async with get_session_factory()() as db_session:
            store = SqlAlchemyIdentityStore(
                db_session=db_session,
                token_ttl_seconds=settings.confirmation.token_ttl_seconds,
            )
            try:
                user = await store.create_user(email)
            except InvalidInputError as exc:
                print(json.dumps({"error": exc.detail, "code": exc.code}), file=sys.stderr)
                return 1
    finally:
        await dispose_engine()

    print(json.dumps({"user_id": str(user.id), "email": user.email}))
    return 0


async def _run_send_confirmation(email: str) -> int:
    """Run the resend-confirmation workflow for one address."""
    from account_service.main import create_app

    settings = get_settings()
    if settings.confirmation.public_base_url is None:
        print(
            json.dumps({"error": "CONFIRMATION__PUBLIC_BASE_URL is required for CLI links."}),
            file=sys.stderr,
        )
        return 2

    link_builder = RouteLinkBuilder(
        router=create_app().router,
        base_url=str(settings.confirmation.public_base_url),
    )
    try:
        async with get_session_factory()() as db_session:
            service = ConfirmationService(
                identity_store=SqlAlchemyIdentityStore(
                    db_session=db_session,
                    token_ttl_seconds=settings.confirmation.token_ttl_seconds,
                ),
                notification_sender=get_notification_sender(),
                link_builder=link_builder,
                collaborator_timeout_seconds=settings.confirmation.collaborator_timeout_seconds,
            )
            outcome = await service.resend_confirmation(email)
    finally:
        await dispose_engine()

    print(json.dumps({"email": email, "outcome": outcome.value}))
    return 0


def _run_serve(reload: bool) -> int:
    """Serve the HTTP application with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "account_service.main:app",
        host=settings.app.host,
        port=settings.app.port,
        reload=reload,
        log_config=None,
    )
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported operational commands."""
    parser = argparse.ArgumentParser(prog="python -m account_service.cli")
    subcommands = parser.add_subparsers(dest="command", required=True)

    create_parser = subcommands.add_parser("create-user", help="Create an unconfirmed account.")
    create_parser.add_argument("--email", required=True)

    send_parser = subcommands.add_parser(
        "send-confirmation",
        help="Send a fresh confirmation link to an account.",
    )
    send_parser.add_argument("--email", required=True)

    serve_parser = subcommands.add_parser("serve", help="Run the HTTP service.")
    serve_parser.add_argument("--reload", action="store_true")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_structlog(get_settings())
    if args.command == "create-user":
        return asyncio.run(_run_create_user(email=args.email))
    if args.command == "send-confirmation":
        return asyncio.run(_run_send_confirmation(email=args.email))
    if args.command == "serve":
        return _run_serve(reload=args.reload)
    parser.error("Unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
