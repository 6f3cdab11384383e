import json
import logging
from html import escape
from urllib import error, parse, request

from pydantic import BaseModel

from daypass.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class EmailResult(BaseModel):
    success: bool
    messageId: str | None = None
    error: str | None = None


def send_email(to: str, subject: str, html: str | None = None, text: str | None = None) -> EmailResult:
    """Posts one message to the Resend API. Never raises; failures come back in the result."""
    if not settings.RESEND_API_KEY:
        logger.error("email not sent to %s: RESEND_API_KEY is not configured", to)
        return EmailResult(success=False, error="Email service not configured")
    if not settings.EMAIL_FROM:
        logger.error("email not sent to %s: EMAIL_FROM is not configured", to)
        return EmailResult(success=False, error="Email sender not configured")
    if not html and not text:
        return EmailResult(success=False, error="No email content provided (html or text)")

    payload = {"from": settings.EMAIL_FROM, "to": [to], "subject": subject}
    if html:
        payload["html"] = html
    if text:
        payload["text"] = text

    req = request.Request(
        settings.EMAIL_API_URL,
        data=json.dumps(payload).encode("utf-8"),
        method="POST",
        headers={
            "Authorization": f"Bearer {settings.RESEND_API_KEY}",
            "Content-Type": "application/json",
        },
    )
    try:
        with request.urlopen(req, timeout=settings.EMAIL_TIMEOUT_SECONDS) as resp:
            data = json.loads(resp.read().decode("utf-8") or "{}")
    except error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="ignore")
        logger.error("email provider rejected message to %s: %s %s", to, exc.code, detail)
        return EmailResult(success=False, error=detail or f"HTTP {exc.code}")
    except Exception as exc:
        logger.error("email delivery to %s failed: %s", to, exc)
        return EmailResult(success=False, error=str(exc) or "Unknown error")

    message_id = data.get("id")
    logger.info("email sent id=%s to=%s", message_id, to)
    return EmailResult(success=True, messageId=message_id)


def acceptance_link(invitation_id: str, acceptance_token: str | None = None) -> str:
    link = f"{settings.FRONTEND_BASE_URL.rstrip('/')}/guest/accept/{parse.quote(invitation_id, safe='')}"
    if acceptance_token:
        link += "?" + parse.urlencode({"token": acceptance_token})
    return link


def send_invitation_email(
    guest_email: str,
    guest_name: str,
    host_name: str,
    invitation_id: str,
    acceptance_token: str | None = None,
) -> EmailResult:
    # Names are host-supplied; never let them become markup.
    link = acceptance_link(invitation_id, acceptance_token)
    html = (
        f"<p>Hi {escape(guest_name)},</p>"
        f"<p>{escape(host_name)} has invited you for a day pass.</p>"
        f"<p><a href=\"{escape(link, quote=True)}\">Review the visitor agreement and get your QR code</a></p>"
    )
    return send_email(to=guest_email, subject=f"Day pass invitation from {host_name}", html=html)


def send_discount_email(guest_email: str, guest_name: str) -> EmailResult:
    html = (
        f"<p>Hi {escape(guest_name)},</p>"
        "<p>Thanks for your third visit! Here is an exclusive membership discount as a thank-you.</p>"
    )
    return send_email(to=guest_email, subject="Your 3rd visit reward", html=html)
