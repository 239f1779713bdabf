"""
Webhook server receiving indexer events for the push monitor.
Served in-process by main.py when MONITOR_MODE=push.
"""
import logging

from fastapi import FastAPI

from bot.handlers import webhook

logger = logging.getLogger(__name__)


# Create FastAPI app
app = FastAPI(
    title="NCG Bridge Webhook Server",
    description="Receives pushed contract events for the bridge relay",
    version="1.0.0"
)


# Include webhook router
app.include_router(webhook.fastapi_router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    monitor = webhook.push_monitor
    return {
        "status": "healthy",
        "monitor": "ready" if monitor else "not initialized",
        "pending_events": monitor.pending_count if monitor else 0
    }
