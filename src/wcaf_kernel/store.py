"""
Storage backends for wcaf-kernel.

The chain code only talks to the EventStore protocol. Persisting
attestations is an optional extra capability (AttestationStore),
detected with isinstance() against the runtime-checkable protocol.

Every bundled store performs compare-and-append: an event is accepted
only if its prev_hash is the document's current head (GENESIS for a new
document). A writer that lost a race gets ChainConflictError instead of
forking the chain.
"""

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from .attestation import Attestation
from .chain import GENESIS, Actor, Event
from .errors import ChainConflictError, StorageError
from .verify import verify_chain

logger = logging.getLogger(__name__)


@runtime_checkable
class EventStore(Protocol):
    """Minimal storage contract for event chains."""

    def get_last_hash(self, document_id: str) -> str | None:
        """event_hash of the document's latest event, or None."""
        ...

    def append(self, event: Event) -> Event:
        """Durably persist one event, keeping insertion order."""
        ...

    def get_by_document_id(self, document_id: str) -> list[Event]:
        """All events of a document, oldest first."""
        ...


@runtime_checkable
class AttestationStore(Protocol):
    """Optional capability: attestation persistence."""

    def save_attestation(self, attestation: Attestation) -> Attestation:
        ...

    def get_latest_attestation(self, document_id: str) -> Attestation | None:
        ...


def _check_head(document_id: str, event: Event, current_head: str | None) -> None:
    head = current_head or GENESIS
    if event.prev_hash != head:
        logger.warning(
            "append_rejected",
            extra={
                "document_id": document_id,
                "expected_prev": event.prev_hash,
                "current_head": head,
            },
        )
        raise ChainConflictError(document_id, event.prev_hash, head)


class MemoryStore:
    """In-process store. Events are kept per document in append order."""

    def __init__(self) -> None:
        self._events: dict[str, list[Event]] = {}
        self._attestations: dict[str, list[Attestation]] = {}
        self._lock = threading.RLock()

    def append(self, event: Event) -> Event:
        with self._lock:
            events = self._events.setdefault(event.document_id, [])
            _check_head(event.document_id, event, events[-1].event_hash if events else None)
            events.append(event)
        return event

    def get_by_document_id(self, document_id: str) -> list[Event]:
        with self._lock:
            return list(self._events.get(document_id, []))

    def get_last_hash(self, document_id: str) -> str | None:
        with self._lock:
            events = self._events.get(document_id)
            return events[-1].event_hash if events else None

    def save_attestation(self, attestation: Attestation) -> Attestation:
        with self._lock:
            self._attestations.setdefault(attestation.document_id, []).append(attestation)
        return attestation

    def get_latest_attestation(self, document_id: str) -> Attestation | None:
        with self._lock:
            attestations = self._attestations.get(document_id)
            return attestations[-1] if attestations else None


SCHEMA = """
CREATE TABLE IF NOT EXISTS wcaf_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id TEXT NOT NULL,
    event_id TEXT NOT NULL UNIQUE,
    ts TEXT NOT NULL,
    type TEXT NOT NULL,
    actor TEXT NOT NULL,
    payload TEXT NOT NULL,
    prev_hash TEXT NOT NULL,
    event_hash TEXT NOT NULL,
    schema_version TEXT
);

CREATE INDEX IF NOT EXISTS idx_wcaf_events_document ON wcaf_events(document_id, id);
CREATE UNIQUE INDEX IF NOT EXISTS idx_wcaf_events_link ON wcaf_events(document_id, prev_hash);

CREATE TABLE IF NOT EXISTS wcaf_attestations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id TEXT NOT NULL,
    head_event_hash TEXT NOT NULL,
    attested_at TEXT NOT NULL,
    signature_alg TEXT NOT NULL,
    signature TEXT NOT NULL,
    key_id TEXT,
    schema_version TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_wcaf_attestations_document ON wcaf_attestations(document_id, id);
"""


class SQLiteStore:
    """
    SQLite-backed event store with attestation persistence.

    The head check and the insert run under one lock and one
    transaction, and (document_id, prev_hash) is unique, so two writers
    can never both extend the same head.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        if str(db_path) != ":memory:":
            db_path = Path(db_path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self._lock = threading.RLock()
        try:
            self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self._init_schema()
        except sqlite3.Error as exc:
            raise StorageError(f"cannot open event store at {db_path}: {exc}") from exc

    def close(self) -> None:
        self.conn.close()

    def _init_schema(self) -> None:
        with self.conn:
            self.conn.executescript(SCHEMA)
            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.execute("PRAGMA synchronous=NORMAL")

    def _head(self, document_id: str) -> sqlite3.Row | None:
        return self.conn.execute(
            "SELECT id, event_id, ts, event_hash FROM wcaf_events "
            "WHERE document_id = ? ORDER BY id DESC LIMIT 1",
            (document_id,),
        ).fetchone()

    def append(self, event: Event) -> Event:
        with self._lock:
            try:
                head = self._head(event.document_id)
                _check_head(event.document_id, event, head["event_hash"] if head else None)
                with self.conn:
                    self.conn.execute(
                        """
                        INSERT INTO wcaf_events (
                            document_id, event_id, ts, type, actor, payload,
                            prev_hash, event_hash, schema_version
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            event.document_id,
                            event.event_id,
                            event.ts,
                            event.type,
                            json.dumps(event.actor.to_dict(), ensure_ascii=False),
                            json.dumps(event.payload, ensure_ascii=False),
                            event.prev_hash,
                            event.event_hash,
                            event.schema_version,
                        ),
                    )
            except sqlite3.IntegrityError as exc:
                head = self._head(event.document_id)
                current = head["event_hash"] if head else GENESIS
                if current != event.prev_hash:
                    raise ChainConflictError(event.document_id, event.prev_hash, current) from exc
                raise StorageError(f"duplicate event {event.event_id}: {exc}") from exc
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
        return event

    def get_by_document_id(self, document_id: str) -> list[Event]:
        with self._lock:
            try:
                rows = self.conn.execute(
                    "SELECT * FROM wcaf_events WHERE document_id = ? ORDER BY id ASC",
                    (document_id,),
                ).fetchall()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
        return [self._row_to_event(r) for r in rows]

    def get_last_hash(self, document_id: str) -> str | None:
        with self._lock:
            try:
                head = self._head(document_id)
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
        return None if head is None else str(head["event_hash"])

    def get_chain_head(self, document_id: str) -> dict[str, Any] | None:
        """Head hash, timestamp and event id of a document's chain."""
        with self._lock:
            try:
                head = self._head(document_id)
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
        if head is None:
            return None
        return {
            "head_event_hash": head["event_hash"],
            "head_ts": head["ts"],
            "head_id": head["event_id"],
        }

    def verify_stored_chain(self, document_id: str) -> dict[str, Any]:
        """Verify a document's chain as stored."""
        events = self.get_by_document_id(document_id)
        if not events:
            return {"is_valid": True, "event_count": 0}
        check = verify_chain(events)
        return {
            "is_valid": check.ok,
            "event_count": len(events),
            "first_event_id": events[0].event_id,
            "last_event_hash": events[-1].event_hash,
        }

    def save_attestation(self, attestation: Attestation) -> Attestation:
        with self._lock:
            try:
                with self.conn:
                    self.conn.execute(
                        """
                        INSERT INTO wcaf_attestations (
                            document_id, head_event_hash, attested_at,
                            signature_alg, signature, key_id, schema_version
                        ) VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            attestation.document_id,
                            attestation.head_event_hash,
                            attestation.attested_at,
                            attestation.signature_alg,
                            attestation.signature,
                            attestation.key_id,
                            attestation.schema_version,
                        ),
                    )
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
        return attestation

    def get_latest_attestation(self, document_id: str) -> Attestation | None:
        with self._lock:
            try:
                row = self.conn.execute(
                    "SELECT * FROM wcaf_attestations WHERE document_id = ? "
                    "ORDER BY id DESC LIMIT 1",
                    (document_id,),
                ).fetchone()
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc
        if row is None:
            return None
        return Attestation(
            document_id=row["document_id"],
            head_event_hash=row["head_event_hash"],
            attested_at=row["attested_at"],
            signature_alg=row["signature_alg"],
            signature=row["signature"],
            key_id=row["key_id"],
            schema_version=row["schema_version"],
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return Event(
            event_id=row["event_id"],
            ts=row["ts"],
            document_id=row["document_id"],
            type=row["type"],
            actor=Actor.from_dict(json.loads(row["actor"])),
            payload=json.loads(row["payload"]),
            prev_hash=row["prev_hash"],
            event_hash=row["event_hash"],
            schema_version=row["schema_version"],
        )
