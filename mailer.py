"""
Outbound e-mail through Resend.
"""
import logging
import re
from typing import Dict, List, Optional

import resend

import settings

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>?")


class EmailError(Exception):
    pass


def send_email(to: str, subject: str, html: str, attachments: Optional[List[Dict[str, object]]] = None) -> str:
    """Send one message and return the provider's message id.

    ``attachments`` entries are ``{"filename": str, "content": bytes}``.
    Raises EmailError when the key is missing or the provider rejects it.
    """
    api_key = (settings.RESEND_API_KEY or "").strip()
    if not api_key:
        raise EmailError("Resend API key is not configured.")

    payload: Dict[str, object] = {
        "from": settings.EMAIL_FROM,
        "to": [to],
        "subject": subject,
        "html": html,
        "text": _TAG_RE.sub("", html),
    }
    if attachments:
        payload["attachments"] = [
            {"filename": a["filename"], "content": list(a["content"])} for a in attachments
        ]

    resend.api_key = api_key
    try:
        response = resend.Emails.send(payload)
    except Exception as exc:
        raise EmailError(str(exc)) from exc

    if not isinstance(response, dict) or not response.get("id"):
        raise EmailError(f"Unexpected Resend response: {response}")
    logger.info("Sent '%s' to %s (%s)", subject, to, response["id"])
    return response["id"]
