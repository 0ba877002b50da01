"""
Error codes, problem records and exceptions for wcaf-kernel.

Two channels, never mixed:
- Integrity problems (broken links, hash mismatches) are data. They are
  collected into Problem lists and returned by the verifiers.
- Caller misuse and backend faults are exceptions (WcafError subclasses).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProblemCode(str, Enum):
    """Integrity problem codes as they appear in verification output."""
    CHAIN_BREAK = "CHAIN_BREAK"
    HASH_MISMATCH = "HASH_MISMATCH"
    BUNDLE_HASH_MISMATCH = "BUNDLE_HASH_MISMATCH"
    SIGNATURE_ERROR = "SIGNATURE_ERROR"
    MALFORMED_TIMELINE = "MALFORMED_TIMELINE"
    EMPTY_TIMELINE = "EMPTY_TIMELINE"
    UNSUPPORTED_VERSION = "UNSUPPORTED_VERSION"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"


@dataclass(frozen=True)
class Problem:
    """
    A single integrity problem.

    ``index`` is the timeline position for chain problems and None for
    bundle-level problems. ``details`` carries the code-specific fields
    (expected_prev/got_prev, expected_hash/got_hash, message).
    """
    code: ProblemCode
    index: int | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.index is not None:
            out["index"] = self.index
        out["code"] = self.code.value
        out.update(self.details)
        return out


class WcafError(Exception):
    """Base exception for all wcaf-kernel errors."""


class PreconditionError(WcafError, ValueError):
    """Raised when a caller asks for something that cannot be done."""


class EmptyTimelineError(PreconditionError):
    """Raised when a bundle is requested for a timeline with no events."""


class NoEventsError(PreconditionError):
    """Raised when a document has no events to attest or export."""

    def __init__(self, document_id: str):
        super().__init__(f"No events found for document_id: {document_id}")
        self.document_id = document_id


class MissingHeadError(PreconditionError):
    """Raised when an attestation is requested without a head event hash."""


class ChainConflictError(WcafError):
    """
    Raised by a store when an append does not extend the current head.

    This is how a second concurrent writer learns it lost the race
    instead of silently forking the chain.
    """

    def __init__(self, document_id: str, expected_prev: str, current_head: str):
        super().__init__(
            f"Append to {document_id} expected head {expected_prev}, "
            f"but current head is {current_head}"
        )
        self.document_id = document_id
        self.expected_prev = expected_prev
        self.current_head = current_head


class StorageError(WcafError):
    """Raised when a storage backend fails."""


class BundleFormatError(WcafError, ValueError):
    """Raised when bundle JSON cannot be parsed into a bundle document."""


class ConfigError(WcafError):
    """Raised when the configuration is invalid or cannot be read."""
