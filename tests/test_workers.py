"""
Reminder worker tests.

The Celery task body runs against the test database; the broker is never
touched because the dispatcher is replaced by the recording notifier.
"""

import pytest

from conftest import OWNER_SUB, heartbeat_request
from vantage.core import database, notifications
from vantage.core.database import session_scope
from vantage.models import NodeType, OrganizationStatus, StrategicObjective
from vantage.workers import reminder_tasks


@pytest.fixture
def worker_env(monkeypatch, session_factory, notifier):
    monkeypatch.setattr(database, "session_scope", lambda: session_scope(session_factory))
    monkeypatch.setattr(notifications, "CeleryNotificationDispatcher", lambda: notifier)


@pytest.mark.asyncio
async def test_sweep_refreshes_overdue_risk_and_reminds(
    worker_env, session, store, heartbeats, make_objective, org, clock, notifier
):
    tree = await make_objective()
    initiative = tree.outcomes[0].key_results[0].initiatives[0]
    # Reported on time a month ago.
    clock.advance(days=-30)
    await heartbeats.record_heartbeat(
        OWNER_SUB, org.id, NodeType.initiative, initiative.id, heartbeat_request(clock.today())
    )
    assert tree.objective.risk_score == 0
    await session.commit()

    totals = await reminder_tasks._sweep(None)

    assert totals == {"organizations": 1, "sent": 1, "failed": 0, "skipped": 0}
    assert notifier.sent[0]["subject"] == "Heartbeat Update Required: Outbound campaign"
    objective = await store.get(StrategicObjective, tree.objective.id)
    assert objective.risk_score == 15


@pytest.mark.asyncio
async def test_sweep_single_organization(worker_env, session, tenancy, org):
    await tenancy.create_organization(OWNER_SUB, "Globex")
    await session.commit()

    totals = await reminder_tasks._sweep(str(org.id))

    assert totals["organizations"] == 1


@pytest.mark.asyncio
async def test_sweep_skips_suspended_organizations(worker_env, session, tenancy, org):
    await tenancy.set_organization_status(OWNER_SUB, org.id, OrganizationStatus.suspended)
    await session.commit()

    totals = await reminder_tasks._sweep(None)

    assert totals["organizations"] == 0
