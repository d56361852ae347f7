"""Outbound email (SendGrid v3) and SMS (Twilio) delivery.

Both channels degrade to log-only when credentials are not configured so
local development and tests never reach the network.
"""
from __future__ import annotations

import html as html_lib
import re
from typing import Any, Dict, Optional

import httpx

from ageless.config import settings
from ageless.services.email_templates import GENERIC_TEMPLATE, TEMPLATES
from ageless.utils.logger import logger
from ageless.utils.phone import is_valid_phone, normalize_phone

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_VAR_RE = re.compile(r"{{\s*(\w+)\s*}}")


def html_to_text(body: str) -> str:
    if not body:
        return ""
    text = re.sub(r"<style[^>]*>.*?</style>", "", body, flags=re.I | re.S)
    text = re.sub(r"<script[^>]*>.*?</script>", "", text, flags=re.I | re.S)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html_lib.unescape(text).replace("\xa0", " ")
    return re.sub(r"\s+", " ", text).strip()


def render_template(text: str, variables: Dict[str, Any]) -> str:
    """Replace ``{{ name }}`` placeholders; unknown names render empty."""
    if not text:
        return ""

    def _sub(match: "re.Match[str]") -> str:
        value = variables.get(match.group(1))
        return "" if value is None else str(value)

    return _VAR_RE.sub(_sub, text)


def build_email(template_name: str, variables: Dict[str, Any]) -> Dict[str, str]:
    template = TEMPLATES.get(template_name)
    if template is None:
        logger.warning("[email] No template found for %r - using generic", template_name)
        template = GENERIC_TEMPLATE
    body_html = render_template(template["body_html"], variables)
    return {
        "subject": render_template(template["subject"], variables),
        "html": body_html,
        "text": html_to_text(body_html),
    }


async def send_templated_email(
    template_name: str,
    recipient: Optional[str],
    variables: Optional[Dict[str, Any]] = None,
) -> bool:
    """Render and send a transactional email. Never raises; returns delivery success."""
    if not recipient or not _EMAIL_RE.match(recipient):
        logger.error("[email] Invalid recipient email: %r", recipient)
        return False

    message = build_email(template_name, variables or {})

    if not settings.email_enabled:
        logger.info(
            "[email] SendGrid disabled, not sent: %s -> %s subject=%r",
            template_name,
            recipient,
            message["subject"],
        )
        return True

    payload = {
        "personalizations": [{"to": [{"email": recipient}]}],
        "from": {"email": settings.SENDGRID_FROM_EMAIL, "name": settings.SENDGRID_FROM_NAME},
        "subject": message["subject"],
        "content": [
            {"type": "text/plain", "value": message["text"] or message["subject"]},
            {"type": "text/html", "value": message["html"]},
        ],
    }
    headers = {
        "Authorization": f"Bearer {settings.SENDGRID_API_KEY}",
        "Content-Type": "application/json",
    }

    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(15.0, connect=5.0)) as client:
            resp = await client.post(SENDGRID_URL, json=payload, headers=headers)
    except httpx.RequestError as exc:
        logger.error("[email] SendGrid request error for %s -> %s: %s", template_name, recipient, exc)
        return False

    if resp.status_code >= 400:
        logger.error(
            "[email] SendGrid rejected %s -> %s status=%s body=%s",
            template_name,
            recipient,
            resp.status_code,
            resp.text,
        )
        return False

    logger.info("[email] Email sent: %s -> %s", template_name, recipient)
    return True


async def send_sms(to_number: Optional[str], body: str) -> Dict[str, Any]:
    """Send an SMS through Twilio. Returns ``{"ok": bool, ...}``; never raises."""
    if not settings.sms_enabled:
        logger.info("[sms] Twilio not configured, SMS skipped to=%s", to_number)
        return {"ok": False, "error": "sms_not_configured"}

    if not is_valid_phone(to_number):
        logger.warning("[sms] Invalid phone number: %r", to_number)
        return {"ok": False, "error": "invalid_phone_number"}

    url = TWILIO_URL.format(sid=settings.TWILIO_ACCOUNT_SID)
    data = {"To": normalize_phone(to_number), "From": settings.TWILIO_FROM_NUMBER, "Body": body}

    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(15.0, connect=5.0)) as client:
            resp = await client.post(
                url,
                data=data,
                auth=(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN),
            )
    except httpx.RequestError as exc:
        logger.error("[sms] Twilio request error to=%s: %s", to_number, exc)
        return {"ok": False, "error": str(exc)}

    if resp.status_code >= 400:
        logger.error("[sms] Twilio rejected SMS status=%s body=%s", resp.status_code, resp.text)
        return {"ok": False, "error": f"twilio_status_{resp.status_code}"}

    sid = resp.json().get("sid")
    logger.info("[sms] SMS sent to=%s sid=%s", to_number, sid)
    return {"ok": True, "provider_message_id": sid}
