"""
wcaf-kernel: Tamper-evident audit chains, attestations and bundles.

Events for each document are linked into a SHA-256 hash chain over
canonical JSON. Chain heads can be attested with an institutional key,
and whole timelines exported as independently verifiable bundles.
"""

from .canonical import ABSENT, canonical_json
from .chain import (
    GENESIS,
    EVENT_SCHEMA_VERSION,
    Actor,
    Event,
    append_event,
    build_event,
    compute_event_hash,
    sha256_hex,
)
from .verify import ChainVerification, verify_chain
from .attestation import (
    ATTESTATION_SCHEMA_VERSION,
    Attestation,
    attest_document,
    create_attestation,
    verify_attestation,
)
from .bundle import (
    BUNDLE_VERSION,
    BundleVerification,
    create_bundle,
    export_bundle_json,
    load_bundle_json,
    verify_bundle,
)
from .signing import ED25519, RSA_SHA256
from .store import AttestationStore, EventStore, MemoryStore, SQLiteStore
from .events import EventType, ReplayState, replay
from .config import ForensicsConfig
from .forensics import Forensics
from .summary import bundle_summary, format_bundle_summary
from .errors import (
    BundleFormatError,
    ChainConflictError,
    ConfigError,
    EmptyTimelineError,
    MissingHeadError,
    NoEventsError,
    PreconditionError,
    Problem,
    ProblemCode,
    StorageError,
    WcafError,
)

__version__ = "1.0.0"
__all__ = [
    # Canonical JSON
    "ABSENT",
    "canonical_json",
    # Hash chain
    "GENESIS",
    "EVENT_SCHEMA_VERSION",
    "Actor",
    "Event",
    "append_event",
    "build_event",
    "compute_event_hash",
    "sha256_hex",
    # Verification
    "ChainVerification",
    "verify_chain",
    # Attestation
    "ATTESTATION_SCHEMA_VERSION",
    "Attestation",
    "attest_document",
    "create_attestation",
    "verify_attestation",
    # Bundles
    "BUNDLE_VERSION",
    "BundleVerification",
    "create_bundle",
    "export_bundle_json",
    "load_bundle_json",
    "verify_bundle",
    "bundle_summary",
    "format_bundle_summary",
    # Signatures
    "ED25519",
    "RSA_SHA256",
    # Storage
    "AttestationStore",
    "EventStore",
    "MemoryStore",
    "SQLiteStore",
    # Vocabulary and replay
    "EventType",
    "ReplayState",
    "replay",
    # Facade and configuration
    "Forensics",
    "ForensicsConfig",
    # Errors
    "BundleFormatError",
    "ChainConflictError",
    "ConfigError",
    "EmptyTimelineError",
    "MissingHeadError",
    "NoEventsError",
    "PreconditionError",
    "Problem",
    "ProblemCode",
    "StorageError",
    "WcafError",
]
