"""
Heartbeat reminders.

Finds heartbeat-bearing nodes of active objectives whose owners have not
reported within their cadence and emails them a nudge.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any
from uuid import UUID

from vantage.core.config import settings
from vantage.core.exceptions import DependencyUnavailable
from vantage.core.notifications import NotificationDispatcher
from vantage.core.security import build_heartbeat_link
from vantage.core.store import EntityStore
from vantage.models.base import utcnow
from vantage.models.heartbeat import Heartbeat, NodeType
from vantage.models.objective import LifecycleStatus, StrategicObjective
from vantage.models.user import UserProfile
from vantage.services import scoring
from vantage.services.tree import load_heartbeats, load_objective_tree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DueHeartbeat:
    node_type: NodeType
    node_id: UUID
    name: str
    owner_id: str
    last_period_end: date | None
    due_since: date


@dataclass(frozen=True)
class ReminderReport:
    sent: int = 0
    failed: int = 0
    skipped: int = 0


class ReminderService:
    def __init__(
        self,
        store: EntityStore,
        notifier: NotificationDispatcher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.clock = clock

    async def due_heartbeats(self, org_id: UUID) -> list[DueHeartbeat]:
        """
        Nodes whose last heartbeat (or creation, if none) is older than their
        cadence interval. Only Active objectives and Active initiatives count.
        """
        today = self.clock().date()
        default_frequency = settings.DEFAULT_HEARTBEAT_FREQUENCY
        due: list[DueHeartbeat] = []

        objectives = await self.store.query(
            StrategicObjective,
            org_id=org_id,
            status=LifecycleStatus.active,
            order_by=["created_at"],
        )
        for objective in objectives:
            tree = await load_objective_tree(self.store, org_id, objective.id)
            history = await load_heartbeats(self.store, tree)

            candidates: list[tuple[NodeType, Any, str]] = [
                (NodeType.objective, tree.objective, tree.objective.name)
            ]
            candidates.extend(
                (NodeType.key_result, kr, kr.description) for kr in tree.key_results()
            )
            candidates.extend(
                (NodeType.initiative, initiative, initiative.name)
                for initiative in tree.initiatives()
                if initiative.status == LifecycleStatus.active
            )

            for node_type, node, name in candidates:
                cadence = getattr(node, "heartbeat_cadence", None)
                interval = scoring.cadence_days(cadence, default_frequency)
                entry = _due_entry(node_type, node, name, history.get(node.id, []), interval, today)
                if entry is not None:
                    due.append(entry)

        return due

    async def send_reminders(self, org_id: UUID) -> ReminderReport:
        """
        Email each overdue node's owner.

        Delivery failures are logged and counted; they never abort the run.
        Owners without a profile are skipped.
        """
        sent = failed = skipped = 0
        due = await self.due_heartbeats(org_id)
        if not due:
            return ReminderReport()

        profiles = {
            p.user_sub: p
            for p in await self.store.query(UserProfile, user_sub=list({d.owner_id for d in due}))
        }

        for item in due:
            profile = profiles.get(item.owner_id)
            if profile is None:
                logger.debug("No profile for owner %s; skipping reminder", item.owner_id)
                skipped += 1
                continue

            link = build_heartbeat_link(item.node_type.value, item.node_id)
            subject = f"Heartbeat Update Required: {item.name}"
            text_body = (
                f"Hi {profile.display_name},\n\n"
                f"A heartbeat for \"{item.name}\" has been due since {item.due_since.isoformat()}.\n\n"
                f"Submit it here: {link}"
            )
            html_body = f"""
                <h2>Heartbeat Update Required</h2>
                <p>Hi {profile.display_name},</p>
                <p>A heartbeat for <strong>{item.name}</strong> has been due since
                {item.due_since.isoformat()}.</p>
                <p><a href="{link}">Submit Heartbeat</a></p>
            """
            try:
                await self.notifier.send_email(profile.email, subject, text_body, html_body)
            except DependencyUnavailable as exc:
                logger.warning(
                    "Reminder for %s %s not delivered: %s",
                    item.node_type.value, item.node_id, exc.message,
                )
                failed += 1
                continue
            sent += 1

        logger.info(
            "Heartbeat reminders for org %s: %d sent, %d failed, %d skipped",
            org_id, sent, failed, skipped,
        )
        return ReminderReport(sent=sent, failed=failed, skipped=skipped)


def _due_entry(
    node_type: NodeType,
    node: Any,
    name: str,
    heartbeats: list[Heartbeat],
    interval: int,
    today: date,
) -> DueHeartbeat | None:
    history = scoring.ordered(heartbeats)
    last_period_end = history[-1].period_end if history else None
    reference = last_period_end or node.created_at.date()
    due_since = reference + timedelta(days=interval)
    if today <= due_since:
        return None
    return DueHeartbeat(
        node_type=node_type,
        node_id=node.id,
        name=name,
        owner_id=node.owner_id,
        last_period_end=last_period_end,
        due_since=due_since,
    )
