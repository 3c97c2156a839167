"""
Event routing: a module-level registry from event type to handler.

Usage:
    from billing.webhooks.router import register_handler

    @register_handler("customer.subscription.created", "customer.subscription.updated")
    def handle_subscription_changed(event, context) -> HandlerResult:
        ...

    handler = route("customer.subscription.updated")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from billing.webhooks.events import ProviderEvent
    from billing.webhooks.processor import HandlerContext
    from billing.webhooks.results import HandlerResult

    Handler = Callable[[ProviderEvent, HandlerContext], HandlerResult]

logger = logging.getLogger(__name__)


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Handler] = {}


def register_handler(*event_types: str) -> Callable[[Handler], Handler]:
    """
    Decorator registering a handler for one or more event types.

    Raises:
        ValueError: No event type given, or a type is already registered
            to a different handler
    """
    if not event_types:
        raise ValueError("register_handler needs at least one event type")

    def decorator(func: Handler) -> Handler:
        for event_type in event_types:
            existing = WEBHOOK_HANDLERS.get(event_type)
            if existing is not None and (
                existing.__module__, existing.__qualname__
            ) != (func.__module__, func.__qualname__):
                raise ValueError(
                    f"{event_type} is already handled by {existing.__name__}"
                )
            WEBHOOK_HANDLERS[event_type] = func
            logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def route(event_type: str) -> Handler | None:
    """Return the handler for an event type, or None when nothing handles it."""
    return WEBHOOK_HANDLERS.get(event_type)
