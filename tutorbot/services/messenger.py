"""WhatsApp delivery through Twilio.

Lines for one reply are joined with newlines into a single message body.
"""

import asyncio
import logging
from typing import Protocol

from tutorbot.config import settings

logger = logging.getLogger(__name__)


class Messenger(Protocol):
    async def send(self, to: str, lines: list[str]) -> None: ...


def join_lines(lines: list[str]) -> str:
    return "\n".join(line for line in lines if line)


class TwilioMessenger:
    def __init__(self, account_sid: str | None = None, auth_token: str | None = None, from_number: str | None = None):
        self._account_sid = account_sid or settings.twilio_account_sid
        self._auth_token = auth_token or settings.twilio_auth_token
        self._from = from_number or settings.twilio_whatsapp_number
        self._client = None

    def _get_client(self):
        if self._client is None:
            from twilio.rest import Client
            self._client = Client(self._account_sid, self._auth_token)
        return self._client

    async def send(self, to: str, lines: list[str]) -> None:
        body = join_lines(lines)
        if not body:
            return
        client = self._get_client()
        # The Twilio client is synchronous; keep it off the event loop
        message = await asyncio.to_thread(
            client.messages.create, from_=self._from, to=to, body=body
        )
        logger.debug("Sent message %s to %s", getattr(message, "sid", "?"), to)


_messenger: Messenger | None = None


def get_messenger() -> Messenger:
    """FastAPI dependency returning the process-wide sender."""
    global _messenger
    if _messenger is None:
        _messenger = TwilioMessenger()
    return _messenger
