"""
Institutional attestations over chain heads.

An attestation is a signed statement "as of attested_at, document D's
chain head is H". The signature covers the SHA-256 of the canonical
statement, so it stays the same size however the statement grows.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Mapping

from .canonical import canonical_json
from .chain import sha256_hex, utc_now_iso
from .errors import MissingHeadError, NoEventsError
from .signing import (
    RSA_SHA256,
    KeyMaterial,
    PublicKeyMaterial,
    normalize_algorithm,
    sign_digest,
    verify_digest,
)

if TYPE_CHECKING:
    from .store import EventStore

logger = logging.getLogger(__name__)

ATTESTATION_SCHEMA_VERSION = "wcaf-attestation-1.0"


@dataclass(frozen=True)
class Attestation:
    """A signed statement about a document's chain head."""
    document_id: str
    head_event_hash: str
    attested_at: str
    signature_alg: str
    signature: str
    key_id: str | None
    schema_version: str = ATTESTATION_SCHEMA_VERSION

    def statement(self) -> dict[str, Any]:
        """The signed field set."""
        return attestation_statement(
            self.document_id, self.head_event_hash, self.attested_at, self.schema_version
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "head_event_hash": self.head_event_hash,
            "attested_at": self.attested_at,
            "signature_alg": self.signature_alg,
            "signature": self.signature,
            "key_id": self.key_id,
            "schema_version": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Attestation":
        return cls(
            document_id=data["document_id"],
            head_event_hash=data["head_event_hash"],
            attested_at=data["attested_at"],
            signature_alg=data["signature_alg"],
            signature=data["signature"],
            key_id=data.get("key_id"),
            schema_version=data.get("schema_version", ATTESTATION_SCHEMA_VERSION),
        )


def attestation_statement(
    document_id: str,
    head_event_hash: str,
    attested_at: str,
    schema_version: str = ATTESTATION_SCHEMA_VERSION,
) -> dict[str, Any]:
    return {
        "document_id": document_id,
        "head_event_hash": head_event_hash,
        "attested_at": attested_at,
        "schema_version": schema_version,
    }


def statement_hash(statement: Mapping[str, Any]) -> str:
    return sha256_hex(canonical_json(dict(statement)))


def create_attestation(
    document_id: str,
    head_event_hash: str,
    key_id: str | None,
    private_key: KeyMaterial,
    algorithm: str = RSA_SHA256,
    *,
    clock: Callable[[], str] = utc_now_iso,
) -> Attestation:
    """
    Sign a statement about ``document_id``'s current chain head.

    Args:
        document_id: Attested document
        head_event_hash: event_hash of the document's latest event
        key_id: Identifier of the signing key, for key rotation
        private_key: PEM private key (RSA or Ed25519) or key object
        algorithm: "RSA-SHA256" (default) or anything naming Ed25519

    Returns:
        The attestation

    Raises:
        MissingHeadError: If head_event_hash is empty
        ValueError: If the private key is unusable for the algorithm
    """
    if not head_event_hash:
        raise MissingHeadError(f"Cannot attest {document_id}: no head event hash")

    signature_alg = normalize_algorithm(algorithm)
    statement = attestation_statement(document_id, head_event_hash, clock())
    signature = sign_digest(statement_hash(statement), private_key, signature_alg)

    logger.info(
        "attestation_created",
        extra={
            "document_id": document_id,
            "head_event_hash": head_event_hash,
            "key_id": key_id,
            "signature_alg": signature_alg,
        },
    )
    return Attestation(
        document_id=document_id,
        head_event_hash=head_event_hash,
        attested_at=statement["attested_at"],
        signature_alg=signature_alg,
        signature=signature,
        key_id=key_id,
        schema_version=statement["schema_version"],
    )


def attest_document(
    store: "EventStore",
    document_id: str,
    key_id: str | None,
    private_key: KeyMaterial,
    algorithm: str = RSA_SHA256,
) -> Attestation:
    """
    Attest the head currently recorded in ``store`` for ``document_id``.

    Raises:
        NoEventsError: If the document has no events
    """
    head = store.get_last_hash(document_id)
    if not head:
        raise NoEventsError(document_id)
    return create_attestation(document_id, head, key_id, private_key, algorithm)


def verify_attestation(
    attestation: Attestation | Mapping[str, Any],
    public_key: PublicKeyMaterial | None,
) -> bool:
    """
    Check an attestation's signature against ``public_key``.

    The statement is rebuilt from the attestation's own fields. Never
    raises: missing fields, a missing key, bad encodings and wrong keys
    all give False.
    """
    if public_key is None:
        return False
    if not isinstance(attestation, Attestation):
        try:
            attestation = Attestation.from_dict(attestation)
        except (KeyError, TypeError):
            return False
    if not isinstance(attestation.signature_alg, str):
        return False

    try:
        digest = statement_hash(attestation.statement())
    except (TypeError, ValueError):
        return False

    return verify_digest(
        digest,
        attestation.signature,
        public_key,
        normalize_algorithm(attestation.signature_alg),
    )
