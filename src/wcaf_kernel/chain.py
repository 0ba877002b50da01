"""
Hash-chain construction for wcaf-kernel.

Each event commits to its own content and to the hash of the event
before it in the same document. The first event of a document points
at the GENESIS sentinel.

CRITICAL: event hashes are SHA-256 over canonical_json of the event
core (every field except event_hash). Changing what goes into the core
breaks every chain already on record.
"""

import hashlib
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from .canonical import ABSENT, canonical_json

if TYPE_CHECKING:
    from .store import EventStore

logger = logging.getLogger(__name__)


# Sentinel prev_hash for the first event of a document (no predecessor)
GENESIS = "GENESIS"

EVENT_SCHEMA_VERSION = "wcaf-1.0"
UNKNOWN_SYSTEM = "unknown"


def sha256_hex(data: str) -> str:
    """SHA-256 of a UTF-8 string as lowercase hex."""
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def compute_event_hash(core: Mapping[str, Any]) -> str:
    """
    Compute the event hash of an event core.

    Args:
        core: Event fields, excluding event_hash

    Returns:
        Lowercase hex SHA-256 of the canonical JSON of ``core``
    """
    return sha256_hex(canonical_json(dict(core)))


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_event_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Actor:
    """Who produced an event. instance_id is left out of the hash when unset."""
    system: str = UNKNOWN_SYSTEM
    instance_id: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out = dict(self.extra)
        out["system"] = self.system
        if self.instance_id is not None:
            out["instance_id"] = self.instance_id
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "Actor":
        if not data:
            return cls()
        extra = {k: v for k, v in data.items() if k not in ("system", "instance_id")}
        return cls(
            system=data.get("system", UNKNOWN_SYSTEM),
            instance_id=data.get("instance_id"),
            extra=extra,
        )


@dataclass(frozen=True)
class Event:
    """
    One link of a document's audit chain.

    ``schema_version`` is None only for records written before the field
    existed; such records hash without it.
    """
    event_id: str
    ts: str
    document_id: str
    type: str
    actor: Actor
    payload: dict[str, Any]
    prev_hash: str
    event_hash: str
    schema_version: Optional[str] = EVENT_SCHEMA_VERSION

    def core(self) -> dict[str, Any]:
        """The hashed field set (everything except event_hash)."""
        return {
            "event_id": self.event_id,
            "ts": self.ts,
            "document_id": self.document_id,
            "type": self.type,
            "actor": self.actor.to_dict(),
            "payload": self.payload,
            "prev_hash": self.prev_hash,
            "schema_version": ABSENT if self.schema_version is None else self.schema_version,
        }

    def to_dict(self) -> dict[str, Any]:
        out = {k: v for k, v in self.core().items() if v is not ABSENT}
        out["event_hash"] = self.event_hash
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Event":
        return cls(
            event_id=data["event_id"],
            ts=data["ts"],
            document_id=data["document_id"],
            type=data["type"],
            actor=Actor.from_dict(data.get("actor")),
            payload=data.get("payload", {}),
            prev_hash=data["prev_hash"],
            event_hash=data["event_hash"],
            schema_version=data.get("schema_version"),
        )


def build_event(
    document_id: str,
    event_type: str,
    payload: Mapping[str, Any] | None,
    prev_hash: str,
    actor: Actor | Mapping[str, Any] | None = None,
    schema_version: Optional[str] = EVENT_SCHEMA_VERSION,
    *,
    event_id: str | None = None,
    ts: str | None = None,
) -> Event:
    """
    Assemble an event linked to ``prev_hash`` and compute its hash.

    Pure: no storage access. Unknown event types pass through untouched.
    """
    if not isinstance(actor, Actor):
        actor = Actor.from_dict(actor)

    draft = Event(
        event_id=event_id or new_event_id(),
        ts=ts or utc_now_iso(),
        document_id=document_id,
        type=getattr(event_type, "value", event_type),
        actor=actor,
        payload=dict(payload or {}),
        prev_hash=prev_hash,
        event_hash="",
        schema_version=schema_version,
    )
    return replace(draft, event_hash=compute_event_hash(draft.core()))


def append_event(
    store: "EventStore",
    document_id: str,
    event_type: str,
    payload: Mapping[str, Any] | None = None,
    actor: Actor | Mapping[str, Any] | None = None,
    schema_version: Optional[str] = EVENT_SCHEMA_VERSION,
    *,
    clock: Callable[[], str] = utc_now_iso,
    id_factory: Callable[[], str] = new_event_id,
) -> Event:
    """
    Append one event to a document's chain.

    Reads the current head from the store (GENESIS when the document is
    new), builds the linked event and hands it to ``store.append`` exactly
    once. Stores reject the append with ChainConflictError if the head
    moved in between; storage errors propagate unchanged.

    Args:
        store: Storage backend implementing the EventStore protocol
        document_id: Chain to append to
        event_type: Event kind (EventType member or any string)
        payload: Event data, opaque to the chain (default: {})
        actor: Attribution (default: unknown system)
        schema_version: Format tag carried in the hashed core
        clock: Timestamp source
        id_factory: Event id source

    Returns:
        The stored event
    """
    prev_hash = store.get_last_hash(document_id) or GENESIS
    event = build_event(
        document_id,
        event_type,
        payload,
        prev_hash,
        actor,
        schema_version,
        event_id=id_factory(),
        ts=clock(),
    )
    stored = store.append(event)
    logger.debug(
        "event_appended",
        extra={
            "document_id": document_id,
            "event_type": event.type,
            "event_hash": event.event_hash,
            "prev_hash": prev_hash,
        },
    )
    return stored
