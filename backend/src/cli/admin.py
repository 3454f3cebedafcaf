"""
Operator CLI for the notification service.

Commands:
    webtrigger generate-vapid-keys     Print a new VAPID key pair for .env
    webtrigger cleanup-subscriptions   Delete stale push subscriptions (cron)
    webtrigger init-db                 Create database tables
"""

import asyncio
import sys

import click
import structlog

from src.config import settings
from src.database import use_selector_event_loop_on_windows
from src.observability.logging import configure_logging

logger = structlog.get_logger(__name__)


@click.group()
def cli():
    """WebTrigger notification admin tool."""
    configure_logging()
    use_selector_event_loop_on_windows()


@cli.command("generate-vapid-keys")
def generate_vapid_keys():
    """
    Generate a VAPID key pair for Web Push.

    Paste the output into .env; the public key is served to browsers from
    /api/v1/notifications/push/vapid-public-key.
    """
    from src.notifications.push_client import PushClient

    private_key, public_key = PushClient.generate_vapid_keys()
    click.echo(f"VAPID_PRIVATE_KEY={private_key}")
    click.echo(f"VAPID_PUBLIC_KEY={public_key}")


@cli.command("cleanup-subscriptions")
def cleanup_subscriptions():
    """
    Delete push subscriptions marked expired by the push service.

    Intended to run from cron; the same sweep is exposed to admins at
    POST /api/v1/admin/cleanup.
    """
    deleted = asyncio.run(cleanup_subscriptions_async())
    click.echo(f"Cleaned up {deleted} stale push subscriptions")


async def cleanup_subscriptions_async() -> int:
    from src.database import async_session_maker, engine
    from src.notifications.service import create_notification_orchestrator

    orchestrator = create_notification_orchestrator(async_session_maker)

    try:
        result = await orchestrator.cleanup_stale_subscriptions()
    finally:
        if engine is not None:
            await engine.dispose()

    return result["deleted"]


@cli.command("init-db")
def init_db():
    """Create all tables (development only; production schemas are managed outside the app)."""
    from src.database import init_db as create_tables

    if settings.is_production:
        click.echo("Refusing to create tables in production", err=True)
        sys.exit(1)

    asyncio.run(create_tables())
    logger.info("Database schema initialized")
    click.echo("Database schema initialized successfully!")


def main():
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
