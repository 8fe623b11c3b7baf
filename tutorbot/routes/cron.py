"""Scheduled broadcast endpoint, hit by an external scheduler."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from tutorbot.db.database import get_db
from tutorbot.errors import InvalidSlotError
from tutorbot.services.conversation_service import broadcast_starter
from tutorbot.services.messenger import get_messenger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get("/trigger")
async def trigger_starter(
    slot: str = Query(""),
    db=Depends(get_db),
    messenger=Depends(get_messenger),
):
    """Send the morning / noon / evening conversation starter to every learner."""
    try:
        recipients = await broadcast_starter(db, messenger, slot)
    except InvalidSlotError:
        logger.warning("Cron trigger with invalid slot %r", slot)
        raise HTTPException(status_code=400, detail="Invalid slot")

    return {"status": "sent", "slot": slot, "recipients": recipients}
