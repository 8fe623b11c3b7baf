"""Inbound WhatsApp webhook (Twilio form-encoded POST)."""

import logging

from fastapi import APIRouter, Depends, Form
from fastapi.responses import Response

from tutorbot.db.database import get_db
from tutorbot.services.conversation_service import get_engine, handle_inbound
from tutorbot.services.messenger import get_messenger

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])


@router.post("/webhook/whatsapp")
async def whatsapp_webhook(
    sender: str = Form("", alias="From"),
    body: str = Form("", alias="Body"),
    db=Depends(get_db),
    engine=Depends(get_engine),
    messenger=Depends(get_messenger),
):
    """Run one learner message through the tutor, which also sends the reply.

    Always answers 200 so Twilio does not redeliver; failures are logged.
    """
    logger.info("Webhook hit. From: %s Text: %r", sender, body[:80])
    if not sender:
        return Response(status_code=200)

    try:
        await handle_inbound(db, engine, messenger, sender, body)
    except Exception:
        logger.exception("Could not process message from %s; the turn was not saved", sender)

    return Response(status_code=200)
