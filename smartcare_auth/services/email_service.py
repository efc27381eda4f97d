import asyncio
import logging

import resend
from smartcare_auth.core.config import settings

logger = logging.getLogger(__name__)


def _send(payload: dict):
    resend.api_key = settings.RESEND_API_KEY
    return resend.Emails.send(payload)


async def send_email(to_email: str, subject: str, body: str, html: str | None = None):
    """
    Sends email using Resend (HTTP-based).
    Errors are logged and re-raised; callers decide how to report them.
    """
    payload = {
        "from": settings.EMAIL_FROM,   # SYSTEM EMAIL
        "to": to_email,                # USER EMAIL
        "subject": subject,
        "text": body,
    }
    if html:
        payload["html"] = html

    try:
        # The Resend SDK is synchronous
        return await asyncio.to_thread(_send, payload)

    except Exception as e:
        logger.error("❌ Email sending failed for %s: %s", to_email, e)
        raise
