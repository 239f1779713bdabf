"""
Webhook handler receiving pushed events from the indexer.
Every decodable delivery is acknowledged with an empty 200 response,
whether or not the event belongs to the watched address. The only exception
is an app serving before main.py attached a monitor: that answers 503 so the
indexer redelivers instead of the event being acknowledged and lost.
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import ValidationError

from core.exceptions import WebhookDecodeError
from core.models import WebhookEvent
from core.push_monitor import PushMonitor

logger = logging.getLogger(__name__)

# FastAPI router for webhook endpoint
fastapi_router = APIRouter()

# Global reference (set by main.py)
push_monitor: Optional[PushMonitor] = None


def decode_event(body: bytes) -> WebhookEvent:
    """Decode a UTF-8 JSON webhook body into a WebhookEvent."""
    try:
        return WebhookEvent.model_validate_json(body)
    except ValidationError as e:
        raise WebhookDecodeError(f"Invalid event payload: {e.error_count()} error(s)") from e


@fastapi_router.post("/")
async def event_webhook_handler(request: Request):
    """Receive one pushed event and hand it to the push monitor."""
    body = await request.body()

    try:
        event = decode_event(body)
    except WebhookDecodeError as e:
        logger.warning(f"Rejected webhook delivery: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    if push_monitor is None:
        logger.error("Webhook received before push monitor was initialized")
        raise HTTPException(status_code=503, detail="Monitor not ready")

    accepted = await push_monitor.ingest(event)
    logger.debug(
        f"Webhook event {event.transaction_hash}#{event.log_index} "
        f"{'queued' if accepted else 'ignored'}"
    )

    return Response(status_code=200)
