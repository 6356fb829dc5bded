#!/usr/bin/env python3
"""
Operator commands for integration authorization.
Walks an integration through discovery, authorization and token lookup
without the web application.
"""

import argparse
import asyncio
import json
import sys
from typing import Any

import httpx
import structlog

from integration_auth.config import get_settings
from integration_auth.container import (
    AuthServices,
    build_auth_services,
    create_engine_and_sessionmaker,
    init_db,
)
from integration_auth.core.encryption import mask_credential_value
from integration_auth.core.errors import IntegrationAuthError
from integration_auth.core.logging_config import configure_logging

logger = structlog.get_logger()


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def _integrations(services: AuthServices, args: argparse.Namespace) -> None:
    _print_json(services.catalog.list_integrations())


async def _discover(services: AuthServices, args: argparse.Namespace) -> None:
    definition = services.catalog.get(args.integration)
    metadata = await services.discovery.metadata_for(definition)
    _print_json(metadata.model_dump(exclude_none=True))


async def _authorize(services: AuthServices, args: argparse.Namespace) -> None:
    state = services.authorization.generate_state()
    start = await services.authorization.start_flow(
        args.integration, args.redirect_uri, state
    )
    print(f"\nOpen this URL to authorize {args.integration}:\n")
    print(start.authorization_url)
    print(f"\nstate:         {state}")
    print(f"code_verifier: {start.code_verifier}\n")


async def _exchange(services: AuthServices, args: argparse.Namespace) -> None:
    tokens = await services.exchanger.exchange(
        args.integration,
        code=args.code,
        code_verifier=args.code_verifier,
        redirect_uri=args.redirect_uri,
        email_account_id=args.email_account_id,
    )
    _print_json(
        {
            "access_token": mask_credential_value(tokens.access_token),
            "has_refresh_token": tokens.refresh_token is not None,
            "expires_in": tokens.expires_in,
            "scope": tokens.scope,
        }
    )


async def _token(services: AuthServices, args: argparse.Namespace) -> None:
    token = await services.tokens.get_auth_token(args.integration, args.email_account_id)
    print(token if args.reveal else mask_credential_value(token))


async def _set_api_key(services: AuthServices, args: argparse.Namespace) -> None:
    connection = await services.tokens.save_api_key(
        args.integration, args.email_account_id, args.api_key
    )
    print(f"✓ API key saved for {connection.name} ({connection.email_account_id})")


COMMANDS = {
    "integrations": _integrations,
    "discover": _discover,
    "authorize": _authorize,
    "exchange": _exchange,
    "token": _token,
    "set-api-key": _set_api_key,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage OAuth connections to MCP integrations"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("integrations", help="List known integrations")
    subparsers.add_parser("init-db", help="Create database tables (development only)")

    discover = subparsers.add_parser("discover", help="Resolve OAuth endpoints")
    discover.add_argument("integration")

    authorize = subparsers.add_parser("authorize", help="Start an authorization flow")
    authorize.add_argument("integration")
    authorize.add_argument("--redirect-uri", required=True)

    exchange = subparsers.add_parser("exchange", help="Exchange an authorization code")
    exchange.add_argument("integration")
    exchange.add_argument("--code", required=True)
    exchange.add_argument("--code-verifier", required=True)
    exchange.add_argument("--redirect-uri", required=True)
    exchange.add_argument("--email-account-id", required=True)

    token = subparsers.add_parser("token", help="Get a valid token for a connection")
    token.add_argument("integration")
    token.add_argument("--email-account-id", required=True)
    token.add_argument("--reveal", action="store_true", help="Print the unmasked token")

    set_api_key = subparsers.add_parser("set-api-key", help="Store an API key")
    set_api_key.add_argument("integration")
    set_api_key.add_argument("--email-account-id", required=True)
    set_api_key.add_argument("--api-key", required=True)

    return parser


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_logging(settings)

    engine, session_maker = create_engine_and_sessionmaker(settings)
    try:
        if args.command == "init-db":
            await init_db(engine)
            print("✓ Database tables created")
            return 0

        async with httpx.AsyncClient(timeout=settings.oauth_http_timeout) as http_client:
            services = build_auth_services(settings, session_maker, http_client)
            try:
                await COMMANDS[args.command](services, args)
            except IntegrationAuthError as e:
                logger.error(
                    "auth_command_failed",
                    command=args.command,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                print(f"\n✗ Error: {e}\n")
                if e.requires_reconnect:
                    print("Reconnect the integration to continue.")
                return 1
        return 0
    finally:
        await engine.dispose()


def main() -> None:
    """CLI entry point."""
    args = build_parser().parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
