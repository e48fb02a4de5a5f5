"""
Event Parser and Dispatcher
Turns a verified raw body into a typed event and routes it to its handler
"""

import json
from typing import Any, Awaitable, Callable, Dict, Mapping

from pydantic import ValidationError as PydanticValidationError

from intake_gateway.core.exceptions import ValidationError
from intake_gateway.core.logging import get_logger
from intake_gateway.models.events import EVENT_TYPES, WebhookEvent, unwrap_envelope, webhook_event_adapter

logger = get_logger(__name__)

EventHandler = Callable[[Any], Awaitable[Dict[str, Any]]]


def _format_errors(e: PydanticValidationError) -> list:
    errors = []
    for err in e.errors():
        # The first loc element is the union tag, e.g. ("call-ended", "call", "status")
        location = ".".join(str(part) for part in err["loc"][1:]) or "body"
        errors.append(f"{location}: {err['msg']}")
    return errors


def parse_event(raw_body: bytes) -> WebhookEvent:
    """
    Decode and validate an inbound event

    Args:
        raw_body: Verified request body

    Returns:
        Typed event, one variant of WebhookEvent

    Raises:
        ValidationError: Invalid JSON, non-object body, unknown type or schema violation
    """
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"Malformed JSON payload: {e}", field="body")

    if not isinstance(payload, dict):
        raise ValidationError("Event payload must be a JSON object", field="body")

    payload = unwrap_envelope(payload)
    event_type = payload.get("type")
    if not event_type:
        raise ValidationError("Missing event type", field="type")
    if event_type not in EVENT_TYPES:
        raise ValidationError(
            f"Unknown event type: {event_type}",
            field="type",
            errors=[f"type must be one of: {', '.join(EVENT_TYPES)}"],
        )

    try:
        return webhook_event_adapter.validate_python(payload)
    except PydanticValidationError as e:
        errors = _format_errors(e)
        logger.warning(f"Rejected {event_type} event: {'; '.join(errors)}")
        raise ValidationError(f"Invalid {event_type} event", errors=errors)


class EventDispatcher:
    """
    Routes typed events to handlers by their type.

    The mapping is fixed at construction; dispatch holds no state of its own.
    """

    def __init__(self, handlers: Mapping[str, EventHandler]):
        unknown = set(handlers) - set(EVENT_TYPES)
        if unknown:
            raise ValueError(f"Handlers registered for unknown event types: {sorted(unknown)}")
        self._handlers: Dict[str, EventHandler] = dict(handlers)

    @property
    def event_types(self) -> list:
        return list(self._handlers)

    async def dispatch(self, event: WebhookEvent) -> Dict[str, Any]:
        handler = self._handlers.get(event.type)
        if handler is None:
            raise ValidationError(f"No handler for event type: {event.type}", field="type")
        logger.debug(f"Dispatching {event.type} event (call={event.call_id})")
        return await handler(event)
