"""
Email background tasks.

Every outgoing email (invitations, heartbeat reminders) goes through
``send_email``; the content is rendered by the caller.
"""

import logging

from vantage.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="vantage.workers.email_tasks.send_email", bind=True, max_retries=3)
def send_email(
    self,  # type: ignore[no-untyped-def]
    to_address: str,
    subject: str,
    text_body: str,
    html_body: str,
) -> dict[str, str]:
    """
    Send one email via Resend.

    Args:
        to_address: Recipient email address.
        subject: Subject line.
        text_body: Plain-text part.
        html_body: HTML part.

    Returns:
        Dict with status and message_id.
    """
    try:
        import resend

        from vantage.core.config import settings

        resend.api_key = settings.RESEND_API_KEY

        params: resend.Emails.SendParams = {
            "from": settings.EMAIL_FROM,
            "to": [to_address],
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }

        response = resend.Emails.send(params)
        return {"status": "sent", "message_id": response["id"]}

    except Exception as exc:
        logger.warning("send_email attempt %d failed: %s", self.request.retries + 1, exc)
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))
