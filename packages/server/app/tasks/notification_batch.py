"""
ARQ background task: send batched share notifications.

Scheduled every 15 minutes. Overlapping runs are safe; rows are only marked
sent by the run whose conditional update claims them.
"""

from __future__ import annotations

import structlog
from arq import cron
from arq.connections import RedisSettings

from app.core.config import get_settings
from app.core.database import Database
from app.core.email import build_email_sender
from app.services.notifications import send_batch

log = structlog.get_logger()


async def startup(ctx: dict) -> None:
    settings = get_settings()
    ctx["settings"] = settings
    ctx["database"] = Database(settings.database_url)
    ctx["email_sender"] = build_email_sender(settings)
    log.info("notification_worker.started")


async def shutdown(ctx: dict) -> None:
    await ctx["email_sender"].close()
    await ctx["database"].dispose()
    log.info("notification_worker.stopped")


async def send_notification_batch(ctx: dict) -> dict:
    """Run one batch. Returns the per-group tally."""
    database: Database = ctx["database"]
    async with database.session() as session:
        result = await send_batch(session, ctx["email_sender"], ctx["settings"])
    if result.total:
        log.info("notification_batch.run", sent=result.sent, failed=result.failed)
    return result.model_dump(mode="json")


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [send_notification_batch]
    cron_jobs = [
        cron(send_notification_batch, minute={0, 15, 30, 45}, run_at_startup=False),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
