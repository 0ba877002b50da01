"""
Event vocabulary and state replay.

The chain treats event types as opaque strings; EventType only names
the kinds this package knows how to fold in replay().
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from .verify import TimelineEntry, _as_record


class EventType(str, Enum):
    """Recognized event kinds."""
    VERIFY_CALLED = "VERIFY_CALLED"
    VERIFY_RESULT = "VERIFY_RESULT"
    POLICY_DECISION = "POLICY_DECISION"
    PAYMENT_ACTION = "PAYMENT_ACTION"
    NOTE = "NOTE"


@dataclass
class ReplayState:
    """Last known value per event kind for one document."""
    document_id: str | None = None
    verify: dict[str, Any] | None = None
    policy: dict[str, Any] | None = None
    payment: dict[str, Any] | None = None
    notes: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "verify": self.verify,
            "policy": self.policy,
            "payment": self.payment,
            "notes": list(self.notes),
        }


_LAST_VALUE_SLOTS = {
    EventType.VERIFY_RESULT.value: "verify",
    EventType.POLICY_DECISION.value: "policy",
    EventType.PAYMENT_ACTION.value: "payment",
}


def replay(timeline: Iterable[TimelineEntry]) -> ReplayState:
    """
    Fold a timeline into its final state.

    VERIFY_RESULT, POLICY_DECISION and PAYMENT_ACTION keep their latest
    payload; NOTE payloads accumulate; other kinds are ignored. Does not
    check the chain.
    """
    state = ReplayState()
    for index, entry in enumerate(timeline):
        record = _as_record(entry)
        if index == 0:
            state.document_id = record.get("document_id")

        event_type = record.get("type")
        if event_type in _LAST_VALUE_SLOTS:
            setattr(state, _LAST_VALUE_SLOTS[event_type], record.get("payload"))
        elif event_type == EventType.NOTE.value:
            state.notes.append(record.get("payload"))

    return state
