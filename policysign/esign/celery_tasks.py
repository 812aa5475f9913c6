import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from policysign.celery_app import celery
from policysign.config import settings
from policysign.database import build_engine
from policysign.esign.models import ACTIVE_REQUEST_STATUSES, NotificationChannel, SignatureRequest
from policysign.esign.reminders import send_reminders
from policysign.esign.sweeper import sweep_expired

logger = logging.getLogger(__name__)


def _run(coro_factory):
    """Run an async job on a fresh loop with its own engine; pooled connections are loop-bound."""

    async def runner():
        engine = build_engine(settings.database_url)
        try:
            return await coro_factory(async_sessionmaker(engine, expire_on_commit=False))
        finally:
            await engine.dispose()

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(runner())
    finally:
        loop.close()


async def _sweep(session_factory) -> int:
    async with session_factory() as db:
        try:
            expired = await sweep_expired(db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    return expired


async def _remind(session_factory) -> dict:
    async with session_factory() as db:
        result = await db.execute(
            select(SignatureRequest.id).where(SignatureRequest.status.in_(ACTIVE_REQUEST_STATUSES))
        )
        request_ids = list(result.scalars().all())

    reminded = failed = 0
    for request_id in request_ids:
        async with session_factory() as db:
            try:
                outcome = await send_reminders(db, request_id, [NotificationChannel.email])
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("Failed to send reminders for signature request %s", request_id)
                continue
        reminded += len(outcome.reminded)
        failed += len(outcome.failed)
    return {"requests": len(request_ids), "reminded": reminded, "failed": failed}


@celery.task(name="esign.sweep_expired")
def sweep_expired_task():
    try:
        expired = _run(_sweep)
    except Exception:
        logger.exception("Error in sweep_expired task")
        raise
    return {"expired": expired}


@celery.task(name="esign.send_due_reminders")
def send_due_reminders():
    if not settings.auto_reminders_enabled:
        logger.debug("Automatic reminders are disabled")
        return {"skipped": True}
    try:
        return _run(_remind)
    except Exception:
        logger.exception("Error in send_due_reminders task")
        raise
