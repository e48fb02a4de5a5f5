"""
Webhook routes for voice platform callbacks
"""

from fastapi import APIRouter, Depends, Request

from intake_gateway.core.logging import get_logger
from intake_gateway.api.middleware.rate_limit import check_webhook_rate_limit
from intake_gateway.api.middleware.webhook_security import verified_body
from intake_gateway.services.dispatcher import parse_event

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/vapi", dependencies=[Depends(check_webhook_rate_limit)])
async def handle_vapi_event(request: Request, body: bytes = Depends(verified_body)):
    """
    Handle events from the voice AI platform

    The body is authenticated before it is parsed. Events carrying a
    timestamp are then checked for freshness and dispatched by type.
    """
    event = parse_event(body)
    request.app.state.signature_verifier.check_freshness(event.timestamp)

    logger.info(f"Received {event.type} event (call={event.call_id})")
    return await request.app.state.dispatcher.dispatch(event)
