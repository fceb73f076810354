"""
Notification dispatcher tests. The broker is never contacted.
"""

import time

import pytest

from vantage.core.config import settings
from vantage.core.exceptions import DependencyUnavailable
from vantage.core.notifications import CeleryNotificationDispatcher
from vantage.workers import email_tasks
from vantage.workers.celery_app import celery_app


def test_broker_publish_is_bounded_by_notification_timeout():
    conf = celery_app.conf

    assert conf.broker_connection_timeout == settings.NOTIFICATION_TIMEOUT_SECONDS
    assert conf.broker_transport_options["socket_timeout"] == settings.NOTIFICATION_TIMEOUT_SECONDS
    assert (
        conf.broker_transport_options["socket_connect_timeout"]
        == settings.NOTIFICATION_TIMEOUT_SECONDS
    )


@pytest.mark.asyncio
async def test_email_is_queued_without_celery_retries(monkeypatch):
    calls = []
    monkeypatch.setattr(email_tasks.send_email, "apply_async", lambda **kw: calls.append(kw))

    await CeleryNotificationDispatcher().send_email("bob@acme.test", "Hi", "text", "<p>html</p>")

    assert calls[0]["retry"] is False
    assert calls[0]["kwargs"]["to_address"] == "bob@acme.test"
    assert calls[0]["kwargs"]["subject"] == "Hi"


@pytest.mark.asyncio
async def test_stalled_broker_reports_unavailable(monkeypatch):
    def stalled(**kwargs):
        time.sleep(0.2)

    monkeypatch.setattr(email_tasks.send_email, "apply_async", stalled)

    with pytest.raises(DependencyUnavailable):
        await CeleryNotificationDispatcher(timeout=0.01).send_email(
            "bob@acme.test", "Hi", "text", "<p>html</p>"
        )


@pytest.mark.asyncio
async def test_broker_error_reports_unavailable(monkeypatch):
    def refused(**kwargs):
        raise ConnectionRefusedError("redis down")

    monkeypatch.setattr(email_tasks.send_email, "apply_async", refused)

    with pytest.raises(DependencyUnavailable) as excinfo:
        await CeleryNotificationDispatcher().send_email(
            "bob@acme.test", "Hi", "text", "<p>html</p>"
        )
    assert excinfo.value.message == "Email queue is unavailable"
