"""
Handler outcomes.

Expected branches of webhook handling are values, not exceptions:

    APPLIED    the subscription (or catalog) was updated
    NOT_FOUND  no local subscription matches the event's customer
    STALE      a newer provider event was already applied
    IGNORED    nothing handles this event type

APPLIED, NOT_FOUND and STALE all finish the audit record as SUCCESS: the
event was processed, there was simply nothing (more) to write. IGNORED
finishes it as IGNORED.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from billing.state_machines import WebhookAuditStatus


class Outcome(str, Enum):
    APPLIED = "applied"
    NOT_FOUND = "not_found"
    STALE = "stale"
    IGNORED = "ignored"


@dataclass(frozen=True)
class HandlerResult:
    outcome: Outcome
    detail: str = ""

    @classmethod
    def applied(cls, detail: str = "") -> HandlerResult:
        return cls(Outcome.APPLIED, detail)

    @classmethod
    def not_found(cls, detail: str = "") -> HandlerResult:
        return cls(Outcome.NOT_FOUND, detail)

    @classmethod
    def stale(cls, detail: str = "") -> HandlerResult:
        return cls(Outcome.STALE, detail)

    @classmethod
    def ignored(cls, detail: str = "") -> HandlerResult:
        return cls(Outcome.IGNORED, detail)

    @property
    def audit_status(self) -> WebhookAuditStatus:
        """Terminal ledger status for this outcome."""
        if self.outcome is Outcome.IGNORED:
            return WebhookAuditStatus.IGNORED
        return WebhookAuditStatus.SUCCESS
