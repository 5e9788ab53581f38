"""
Email Service using Resend
Every delivery attempt is recorded in the email_logs table
"""

import logging
from typing import Optional, Union

import resend
from sqlalchemy.orm import Session

from .config import EMAIL_FROM_ADDRESS, EMAIL_REPLY_TO, RESEND_API_KEY
from .email_templates import render_template
from .models import EmailLog

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailDeliveryError(Exception):
    """Raised when Resend is not configured or rejects the message"""


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    html_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        html_content: Rendered HTML body
        from_address: Optional custom from address

    Returns:
        Resend response dict (contains the message ``id``)
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailDeliveryError("Email service not configured")

    recipients = [to] if isinstance(to, str) else to
    email_data = {
        "from": from_address or EMAIL_FROM_ADDRESS,
        "to": recipients,
        "subject": subject,
        "html": html_content,
    }
    if EMAIL_REPLY_TO:
        email_data["reply_to"] = EMAIL_REPLY_TO

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(email_data)
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailDeliveryError(f"Failed to send email: {str(e)}") from e


async def send_email_with_logging(
    db: Session,
    email_type: str,
    to: str,
    subject: str,
    template_name: str,
    template_data: dict,
    user_id: Optional[int] = None,
    extra: Optional[dict] = None,
) -> dict:
    """
    Render, send and record one email.

    Never raises for delivery problems; the outcome is returned as
    ``{"success": bool, "message_id": ..., "error": ...}`` and stored in EmailLog.
    """
    message_id = None
    error = None
    try:
        html_content = render_template(template_name, template_data)
        response = await send_email(to=to, subject=subject, html_content=html_content)
        message_id = response.get("id") if isinstance(response, dict) else None
    except (EmailDeliveryError, ValueError, KeyError) as e:
        error = str(e)

    log = EmailLog(
        user_id=user_id,
        type=email_type,
        recipient=to,
        subject=subject,
        status="failed" if error else "sent",
        message_id=message_id,
        error=error,
        extra=extra or {},
    )
    db.add(log)
    db.commit()

    if error:
        logger.warning(f"⚠️ Email '{email_type}' to {to} failed: {error}")
        return {"success": False, "message_id": None, "error": error}

    return {"success": True, "message_id": message_id, "error": None}
