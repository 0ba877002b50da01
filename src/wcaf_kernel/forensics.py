"""
Forensics facade: one store plus a default signing identity.

Thin convenience layer over the chain, attestation and bundle modules
for applications that log decisions for many documents through one
backend.
"""

import logging
from typing import Any, Mapping

from .attestation import Attestation, attest_document, verify_attestation
from .bundle import BundleVerification, create_bundle, export_bundle_json, verify_bundle
from .chain import EVENT_SCHEMA_VERSION, Actor, Event, append_event
from .config import ForensicsConfig
from .errors import NoEventsError, PreconditionError
from .events import EventType, ReplayState, replay
from .signing import KeyMaterial, PublicKeyMaterial, algorithm_for_key, load_private_key
from .store import AttestationStore, EventStore, MemoryStore, SQLiteStore
from .verify import ChainVerification, TimelineEntry, verify_chain

logger = logging.getLogger(__name__)


class Forensics:
    """
    Audit log bound to one store and, optionally, one signing key.

    Per-call keys override the defaults given here.
    """

    EventType = EventType

    def __init__(
        self,
        store: EventStore | None = None,
        key_id: str | None = None,
        private_key: KeyMaterial | None = None,
        public_key: PublicKeyMaterial | None = None,
        algorithm: str | None = None,
    ) -> None:
        self.store = store if store is not None else MemoryStore()
        self.key_id = key_id
        self.private_key = private_key
        self.public_key = public_key
        self.algorithm = algorithm

    @classmethod
    def from_config(cls, config: ForensicsConfig, store: EventStore | None = None) -> "Forensics":
        if store is None:
            store = SQLiteStore(config.sqlite_path) if config.sqlite_path else MemoryStore()
        return cls(
            store=store,
            key_id=config.key_id,
            private_key=config.private_key,
            public_key=config.public_key_pem,
            algorithm=config.algorithm,
        )

    def append_event(
        self,
        document_id: str,
        event_type: str,
        payload: Mapping[str, Any] | None = None,
        actor: Actor | Mapping[str, Any] | None = None,
        schema_version: str | None = EVENT_SCHEMA_VERSION,
    ) -> Event:
        return append_event(self.store, document_id, event_type, payload, actor, schema_version)

    def get_timeline(self, document_id: str) -> list[Event]:
        return self.store.get_by_document_id(document_id)

    def verify_chain(self, timeline: list[TimelineEntry]) -> ChainVerification:
        return verify_chain(timeline)

    def replay(self, timeline: list[TimelineEntry]) -> ReplayState:
        return replay(timeline)

    def create_attestation(
        self,
        document_id: str,
        key_id: str | None = None,
        private_key: KeyMaterial | None = None,
        algorithm: str | None = None,
    ) -> Attestation:
        """Attest the document's current head with the given or default key."""
        key = private_key if private_key is not None else self.private_key
        if key is None:
            raise PreconditionError("No private key configured for attestation")
        key = load_private_key(key)
        return attest_document(
            self.store,
            document_id,
            key_id or self.key_id,
            key,
            algorithm or self.algorithm or algorithm_for_key(key),
        )

    def verify_attestation(
        self,
        attestation: Attestation | Mapping[str, Any],
        public_key: PublicKeyMaterial | None = None,
    ) -> bool:
        return verify_attestation(attestation, public_key or self.public_key)

    def create_bundle(
        self,
        timeline: list[TimelineEntry],
        attestation: Attestation | Mapping[str, Any] | None = None,
        private_key: KeyMaterial | None = None,
        key_id: str | None = None,
    ) -> dict[str, Any]:
        return create_bundle(
            timeline,
            attestation,
            private_key if private_key is not None else self.private_key,
            key_id or self.key_id,
        )

    def verify_bundle(
        self,
        bundle: Mapping[str, Any],
        public_key: PublicKeyMaterial | None = None,
    ) -> BundleVerification:
        return verify_bundle(bundle, public_key or self.public_key)

    def export_bundle_json(self, bundle: Mapping[str, Any]) -> str:
        return export_bundle_json(bundle)

    def export_audit_bundle(self, document_id: str) -> dict[str, Any]:
        """
        Full export for one document: timeline, a fresh attestation when
        a default key is configured (persisted if the store can), and a
        bundle signed with the same key.

        Raises:
            NoEventsError: If the document has no events
        """
        timeline = self.get_timeline(document_id)
        if not timeline:
            raise NoEventsError(document_id)

        attestation = None
        if self.private_key is not None and self.key_id:
            attestation = self.create_attestation(document_id)
            if isinstance(self.store, AttestationStore):
                self.store.save_attestation(attestation)

        bundle = self.create_bundle(timeline, attestation)
        logger.info(
            "audit_bundle_exported",
            extra={"document_id": document_id, "event_count": len(timeline)},
        )
        return bundle
