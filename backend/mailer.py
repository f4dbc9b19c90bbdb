"""MailerSend delivery for pending-PR reminder emails."""

import html
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from config import MAILERSEND_API_KEY, MAILERSEND_FROM_EMAIL, MAILERSEND_FROM_NAME

logger = logging.getLogger("pr-board.mailer")

MAILERSEND_BASE_URL = "https://api.mailersend.com/v1"
PENDING_SUBJECT = "🚀 Pending PRs Awaiting Release – Action Needed"


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str


def _release_state(pr: Dict[str, Any]) -> str:
    return "Ready to deploy" if pr.get("status") == "approved" else "Waiting for release approval"


def pending_prs_email(to: str, prs: List[Dict[str, Any]], team_name: str = "Team") -> EmailMessage:
    items_html = "".join(
        f"<p><strong>{html.escape(str(pr.get('title', '')))}</strong> – {_release_state(pr)}</p>"
        for pr in prs
    )
    items_text = "\n".join(f"- {pr.get('title', '')} – {_release_state(pr)}" for pr in prs)

    body_html = (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head><body>"
        "<h2>Pending PRs Awaiting Release – Action Needed</h2>"
        f"<p>Hey {html.escape(team_name)},</p>"
        "<p>The following PR(s) are ready but still pending release:</p>"
        f"<div>{items_html}</div>"
        "<p>Please review and schedule the release for the above PRs when possible.</p>"
        "<p>PR Tracker</p>"
        "</body></html>"
    )
    body_text = (
        "Pending PRs Awaiting Release – Action Needed\n\n"
        f"Hey {team_name},\n\n"
        "The following PR(s) are ready but still pending release:\n\n"
        f"{items_text}\n\n"
        "Please review and schedule the release for the above PRs when possible.\n\n"
        "PR Tracker\n"
    )
    return EmailMessage(to=to, subject=PENDING_SUBJECT, html=body_html, text=body_text)


class MailerSendClient:
    """HTTP client wrapper for the MailerSend email API.

    Delivery is best effort: failures are logged and reported as ``False``.
    """

    def __init__(
        self,
        api_key: str = MAILERSEND_API_KEY,
        from_email: str = MAILERSEND_FROM_EMAIL,
        from_name: str = MAILERSEND_FROM_NAME,
        base_url: str = MAILERSEND_BASE_URL,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self._from_email = from_email
        self._from_name = from_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def send(self, message: EmailMessage) -> bool:
        if not self.enabled:
            logger.warning("MailerSend API key not configured; email to %s not sent", message.to)
            return False

        payload = {
            "from": {"email": self._from_email, "name": self._from_name},
            "to": [{"email": message.to, "name": message.to.split("@")[0]}],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        try:
            client = await self._get_client()
            response = await client.post(
                f"{self._base_url}/email",
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "MailerSend returned error %d: %s",
                e.response.status_code,
                e.response.text[:200] if e.response.text else "no body",
            )
            return False
        except httpx.HTTPError as e:
            logger.warning("MailerSend request failed (%s): %s", type(e).__name__, e)
            return False

        logger.info("Reminder email sent to %s", message.to)
        return True

    async def send_pending_reminder(self, to: str, prs: List[Dict[str, Any]], team_name: str = "Team") -> bool:
        """Nothing pending counts as success without sending anything."""
        if not prs:
            return True
        return await self.send(pending_prs_email(to, prs, team_name))
