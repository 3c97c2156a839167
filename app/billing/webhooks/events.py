"""
Typed webhook events.

The verified body is decoded once, at the edge of the pipeline, into one of
the frozen dataclasses below. Handlers never look at raw payload dicts.

    CheckoutSessionCompleted   checkout.session.completed
    SubscriptionChanged        customer.subscription.created / .updated
    SubscriptionDeleted        customer.subscription.deleted
    InvoicePaymentSucceeded    invoice.payment_succeeded
    InvoicePaymentFailed       invoice.payment_failed
    CatalogChanged             product.* / price.*
    UnknownEvent               anything else

Usage:
    event = parse_event(payload_text)
    if isinstance(event, SubscriptionChanged):
        print(event.customer_id, event.status)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from datetime import timezone as dt_timezone
from typing import TYPE_CHECKING

from billing.exceptions import MalformedEventError

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any


# =============================================================================
# Event Variants
# =============================================================================


@dataclass(frozen=True)
class ProviderEvent:
    """
    Fields shared by every event.

    Attributes:
        event_id: Provider event id (evt_xxx), the idempotency key
        event_type: Provider type tag
        created: Provider-side creation time, used for ordering
        api_version: API version the payload was rendered with
    """

    event_id: str
    event_type: str
    created: datetime
    api_version: str | None


@dataclass(frozen=True)
class CheckoutSessionCompleted(ProviderEvent):
    session_id: str | None
    customer_id: str | None
    subscription_id: str | None
    user_id: str | None


@dataclass(frozen=True)
class SubscriptionChanged(ProviderEvent):
    subscription_id: str | None
    customer_id: str | None
    status: str | None
    price_id: str | None
    product_id: str | None
    current_period_start: datetime | None
    current_period_end: datetime | None
    cancel_at_period_end: bool
    canceled_at: datetime | None
    trial_end: datetime | None


@dataclass(frozen=True)
class SubscriptionDeleted(ProviderEvent):
    subscription_id: str | None
    customer_id: str | None


@dataclass(frozen=True)
class InvoicePaymentSucceeded(ProviderEvent):
    invoice_id: str | None
    customer_id: str | None
    subscription_id: str | None
    amount_paid: int
    next_payment_attempt: datetime | None


@dataclass(frozen=True)
class InvoicePaymentFailed(ProviderEvent):
    invoice_id: str | None
    customer_id: str | None
    subscription_id: str | None


@dataclass(frozen=True)
class CatalogChanged(ProviderEvent):
    object_id: str | None


@dataclass(frozen=True)
class UnknownEvent(ProviderEvent):
    pass


# =============================================================================
# Field Helpers
# =============================================================================


def _timestamp(value: Any) -> datetime | None:
    """Convert a unix timestamp to an aware UTC datetime."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)
    except (TypeError, ValueError, OverflowError) as e:
        raise MalformedEventError(
            "Invalid timestamp in event payload",
            details={"value": repr(value)},
        ) from e


def _ref_id(value: Any) -> str | None:
    """Return the id of a reference that may have been expanded into an object."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("id")
    return None


def _first_item(subscription: dict[str, Any]) -> dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


# =============================================================================
# Decoders
# =============================================================================


def _decode_checkout_session(obj: dict[str, Any]) -> dict[str, Any]:
    metadata = obj.get("metadata") or {}
    return {
        "session_id": obj.get("id"),
        "customer_id": _ref_id(obj.get("customer")),
        "subscription_id": _ref_id(obj.get("subscription")),
        "user_id": metadata.get("userId") or None,
    }


def _decode_subscription(obj: dict[str, Any]) -> dict[str, Any]:
    item = _first_item(obj)
    price = item.get("price") or {}
    # Newer API versions carry the billing period on the item only
    period_start = obj.get("current_period_start", item.get("current_period_start"))
    period_end = obj.get("current_period_end", item.get("current_period_end"))
    return {
        "subscription_id": obj.get("id"),
        "customer_id": _ref_id(obj.get("customer")),
        "status": obj.get("status"),
        "price_id": price.get("id"),
        "product_id": _ref_id(price.get("product")),
        "current_period_start": _timestamp(period_start),
        "current_period_end": _timestamp(period_end),
        "cancel_at_period_end": bool(obj.get("cancel_at_period_end")),
        "canceled_at": _timestamp(obj.get("canceled_at")),
        "trial_end": _timestamp(obj.get("trial_end")),
    }


def _decode_subscription_deleted(obj: dict[str, Any]) -> dict[str, Any]:
    return {
        "subscription_id": obj.get("id"),
        "customer_id": _ref_id(obj.get("customer")),
    }


def _invoice_subscription_id(obj: dict[str, Any]) -> str | None:
    if obj.get("subscription"):
        return _ref_id(obj["subscription"])
    # 2025 API versions moved it under parent.subscription_details
    details = (obj.get("parent") or {}).get("subscription_details") or {}
    return _ref_id(details.get("subscription"))


def _decode_invoice_paid(obj: dict[str, Any]) -> dict[str, Any]:
    return {
        "invoice_id": obj.get("id"),
        "customer_id": _ref_id(obj.get("customer")),
        "subscription_id": _invoice_subscription_id(obj),
        "amount_paid": int(obj.get("amount_paid") or 0),
        "next_payment_attempt": _timestamp(obj.get("next_payment_attempt")),
    }


def _decode_invoice_failed(obj: dict[str, Any]) -> dict[str, Any]:
    return {
        "invoice_id": obj.get("id"),
        "customer_id": _ref_id(obj.get("customer")),
        "subscription_id": _invoice_subscription_id(obj),
    }


def _decode_catalog(obj: dict[str, Any]) -> dict[str, Any]:
    return {"object_id": obj.get("id")}


CATALOG_EVENT_TYPES = (
    "product.created",
    "product.updated",
    "product.deleted",
    "price.created",
    "price.updated",
    "price.deleted",
)

_DECODERS: dict[str, tuple[type[ProviderEvent], Callable[[dict], dict]]] = {
    "checkout.session.completed": (CheckoutSessionCompleted, _decode_checkout_session),
    "customer.subscription.created": (SubscriptionChanged, _decode_subscription),
    "customer.subscription.updated": (SubscriptionChanged, _decode_subscription),
    "customer.subscription.deleted": (SubscriptionDeleted, _decode_subscription_deleted),
    "invoice.payment_succeeded": (InvoicePaymentSucceeded, _decode_invoice_paid),
    "invoice.payment_failed": (InvoicePaymentFailed, _decode_invoice_failed),
    **{event_type: (CatalogChanged, _decode_catalog) for event_type in CATALOG_EVENT_TYPES},
}


# =============================================================================
# Public API
# =============================================================================


def decode_event(data: Any) -> ProviderEvent:
    """
    Decode a provider event dict into its typed variant.

    Raises:
        MalformedEventError: Not an object, missing id/type/created, or the
            data.object of a handled type is missing or has wrongly typed fields
    """
    if not isinstance(data, dict):
        raise MalformedEventError("Event payload is not a JSON object")

    event_id = data.get("id")
    event_type = data.get("type")
    if not isinstance(event_id, str) or not event_id:
        raise MalformedEventError("Event is missing its id")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedEventError(
            "Event is missing its type", details={"event_id": event_id}
        )

    created = _timestamp(data.get("created"))
    if created is None:
        raise MalformedEventError(
            "Event is missing its created timestamp", details={"event_id": event_id}
        )

    common = {
        "event_id": event_id,
        "event_type": event_type,
        "created": created,
        "api_version": data.get("api_version"),
    }

    decoder = _DECODERS.get(event_type)
    if decoder is None:
        return UnknownEvent(**common)

    event_class, decode_object = decoder
    envelope = data.get("data")
    obj = envelope.get("object") if isinstance(envelope, dict) else None
    if not isinstance(obj, dict):
        raise MalformedEventError(
            "Event has no data.object",
            details={"event_id": event_id, "event_type": event_type},
        )
    try:
        fields = decode_object(obj)
    except (TypeError, ValueError, AttributeError, LookupError) as e:
        raise MalformedEventError(
            f"Event data.object has an unexpected shape: {e}",
            details={"event_id": event_id, "event_type": event_type},
        ) from e
    return event_class(**common, **fields)


def parse_event(payload: str) -> ProviderEvent:
    """Parse a verified JSON body and decode it."""
    try:
        data = json.loads(payload)
    except ValueError as e:
        raise MalformedEventError("Event payload is not valid JSON") from e
    return decode_event(data)
