"""Celery tasks for support ticket SLA monitoring."""

from __future__ import annotations

import asyncio
import logging

from celery_app import celery
from src.database.engine import async_session
from src.modules.workflow.registry import build_status_registry

logger = logging.getLogger(__name__)


async def _flag_sla_breaches_async(session_factory=async_session) -> dict:
    """Publish breach notifications for overdue open tickets in one transaction."""
    from src.modules.ticket.service import TicketService

    async with session_factory() as session:
        svc = TicketService(session, build_status_registry())
        try:
            stats = await svc.flag_sla_breaches()
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    return stats


@celery.task(name="src.modules.ticket.tasks.flag_sla_breaches")
def flag_sla_breaches():
    """Periodic: notify once per SLA deadline missed by a non-terminal ticket."""
    stats = asyncio.run(_flag_sla_breaches_async())
    logger.info("SLA breach sweep: %s", stats)
    return stats
