"""
Heartbeat reminder background tasks.

Refreshes derived state of active objectives (overdue penalties grow with
time, not only with new heartbeats) and emails owners of overdue nodes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from vantage.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="vantage.workers.reminder_tasks.send_heartbeat_reminders",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def send_heartbeat_reminders(self, org_id: str | None = None) -> dict[str, Any]:  # type: ignore[no-untyped-def]
    """
    Run the reminder sweep for one organization, or for every Active one.
    """
    try:
        # Always create a fresh event loop: forked workers can inherit a
        # closed loop and pooled connections bound to it.
        from vantage.core.database import async_engine
        async_engine.sync_engine.dispose()

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(_sweep(org_id))
        finally:
            loop.close()
    except Exception as exc:
        logger.error("send_heartbeat_reminders failed: %s", exc)
        raise self.retry(exc=exc)


async def _sweep(org_id: str | None) -> dict[str, Any]:
    """Async helper: one unit of work per organization."""
    import uuid

    from vantage.core.database import session_scope
    from vantage.core.notifications import CeleryNotificationDispatcher
    from vantage.core.store import SQLAlchemyEntityStore
    from vantage.models.objective import LifecycleStatus, StrategicObjective
    from vantage.models.organization import Organization, OrganizationStatus
    from vantage.services.heartbeat_service import HeartbeatService
    from vantage.services.organization_service import TenancyService
    from vantage.services.reminder_service import ReminderService

    notifier = CeleryNotificationDispatcher()

    async with session_scope() as session:
        store = SQLAlchemyEntityStore(session)
        if org_id is not None:
            org_ids = [uuid.UUID(org_id)]
        else:
            orgs = await store.query(Organization, status=OrganizationStatus.active)
            org_ids = [org.id for org in orgs]

    totals = {"organizations": 0, "sent": 0, "failed": 0, "skipped": 0}
    for current in org_ids:
        async with session_scope() as session:
            store = SQLAlchemyEntityStore(session)
            heartbeats = HeartbeatService(store, TenancyService(store, notifier))
            for objective in await store.query(
                StrategicObjective, org_id=current, status=LifecycleStatus.active
            ):
                await heartbeats.recompute_objective(current, objective.id)

            report = await ReminderService(store, notifier).send_reminders(current)

        totals["organizations"] += 1
        totals["sent"] += report.sent
        totals["failed"] += report.failed
        totals["skipped"] += report.skipped

    logger.info("Heartbeat reminder sweep finished: %s", totals)
    return totals
