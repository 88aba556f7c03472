from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from quotehub.core.errors import InvalidInput, InvalidStatusTransition, QuoteNotDeletable, QuoteNotEditable


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    INVOICED = "invoiced"


INITIAL_STATUS = QuoteStatus.DRAFT
CLOSED_STATUSES = frozenset({QuoteStatus.ACCEPTED, QuoteStatus.INVOICED})

TRANSITIONS: dict[QuoteStatus, frozenset[QuoteStatus]] = {
    QuoteStatus.DRAFT: frozenset({QuoteStatus.SENT}),
    QuoteStatus.SENT: frozenset(
        {QuoteStatus.VIEWED, QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED}
    ),
    QuoteStatus.VIEWED: frozenset({QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED}),
    QuoteStatus.ACCEPTED: frozenset({QuoteStatus.INVOICED}),
    # an expired quote can be sent again once its validity is renewed
    QuoteStatus.EXPIRED: frozenset({QuoteStatus.SENT}),
    QuoteStatus.REJECTED: frozenset(),
    QuoteStatus.INVOICED: frozenset(),
}


@dataclass(frozen=True)
class TransitionPlan:
    status: QuoteStatus
    changed: bool
    updates: dict = field(default_factory=dict)


def parse_status(value) -> QuoteStatus:
    if isinstance(value, QuoteStatus):
        return value
    try:
        return QuoteStatus(str(value).strip().lower())
    except ValueError:
        raise InvalidInput(f"Status de orcamento invalido: {value}")


def is_closed(status) -> bool:
    return parse_status(status) in CLOSED_STATUSES


def can_transition(current, target) -> bool:
    current_status = parse_status(current)
    target_status = parse_status(target)
    if current_status == target_status:
        return True
    return target_status in TRANSITIONS[current_status]


def plan_transition(
    current,
    target,
    accepted_at: Optional[datetime] = None,
    rejected_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> TransitionPlan:
    """Validate ``current -> target`` and return the fields to persist.

    Re-entering the current status is a no-op. ``accepted_at`` and
    ``rejected_at`` are stamped only the first time the quote enters that
    status.
    """
    current_status = parse_status(current)
    target_status = parse_status(target)

    if current_status == target_status:
        return TransitionPlan(status=target_status, changed=False)

    if target_status not in TRANSITIONS[current_status]:
        raise InvalidStatusTransition(
            f"Nao e possivel alterar o status de '{current_status.value}' para '{target_status.value}'"
        )

    now = now or datetime.utcnow()
    updates: dict = {"status": target_status.value}
    if target_status == QuoteStatus.ACCEPTED and accepted_at is None:
        updates["accepted_at"] = now
    if target_status == QuoteStatus.REJECTED and rejected_at is None:
        updates["rejected_at"] = now
    return TransitionPlan(status=target_status, changed=True, updates=updates)


def ensure_editable(quote) -> None:
    if is_closed(quote.status):
        raise QuoteNotEditable()


def ensure_deletable(quote) -> None:
    if is_closed(quote.status):
        raise QuoteNotDeletable()
