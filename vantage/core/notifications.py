"""
Notification dispatcher.

Business operations hand emails to a ``NotificationDispatcher``; the
production implementation enqueues a Celery task that talks to Resend.
Dispatch failures surface as ``DependencyUnavailable`` and callers decide
whether they are fatal (they never are for invites and reminders).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from vantage.core.config import settings
from vantage.core.exceptions import DependencyUnavailable

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    async def send_email(
        self,
        to_address: str,
        subject: str,
        text_body: str,
        html_body: str,
    ) -> None: ...


class CeleryNotificationDispatcher:
    """
    Queues emails on the ``email`` Celery queue.

    The publish runs without Celery's own retries and the broker sockets time
    out after ``NOTIFICATION_TIMEOUT_SECONDS``, so the worker thread ends close
    to when the caller stops waiting. A publish that completes in that gap is
    still delivered: an email reported as undelivered may arrive anyway
    (at-least-once).
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS

    async def send_email(
        self,
        to_address: str,
        subject: str,
        text_body: str,
        html_body: str,
    ) -> None:
        from vantage.workers.email_tasks import send_email

        try:
            await asyncio.wait_for(
                asyncio.to_thread(
                    send_email.apply_async,
                    kwargs={
                        "to_address": to_address,
                        "subject": subject,
                        "text_body": text_body,
                        "html_body": html_body,
                    },
                    retry=False,
                ),
                timeout=self.timeout,
            )
        except TimeoutError as exc:
            raise DependencyUnavailable("Timed out queueing email") from exc
        except Exception as exc:
            logger.error("Could not queue email: %s", exc)
            raise DependencyUnavailable("Email queue is unavailable") from exc
