"""
Portable audit bundles for wcaf-kernel.

A bundle is a self-contained JSON document: a copy of one document's
timeline, the chain verification result at packaging time, an optional
embedded attestation and an optional signature over everything else.
Anyone holding the bundle (and, for the signature, the public key) can
re-verify it offline.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from .attestation import Attestation
from .canonical import canonical_json
from .chain import Event, sha256_hex, utc_now_iso
from .errors import BundleFormatError, EmptyTimelineError, Problem, ProblemCode
from .signing import (
    KeyMaterial,
    PublicKeyMaterial,
    algorithm_for_key,
    load_private_key,
    normalize_algorithm,
    sign_digest,
    verify_digest,
)
from .verify import TimelineEntry, _safe_equal, verify_chain

logger = logging.getLogger(__name__)

BUNDLE_VERSION = "wcaf-bundle-1.0"

ATTESTATION_FIELDS = (
    "attested_at",
    "head_event_hash",
    "signature_alg",
    "signature",
    "key_id",
    "schema_version",
)


@dataclass
class BundleVerification:
    """Result of verifying a bundle."""
    bundle_version_ok: bool
    chain_verified: bool
    bundle_signature_verified: bool | None
    attestation_present: bool
    problems: list[Problem] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        # A missing signature (None) is acceptable; a failed one is not.
        return (
            self.bundle_version_ok
            and self.chain_verified
            and self.bundle_signature_verified is not False
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "bundle_version_ok": self.bundle_version_ok,
            "chain_verified": self.chain_verified,
            "bundle_signature_verified": self.bundle_signature_verified,
            "attestation_present": self.attestation_present,
            "problems": [p.to_dict() for p in self.problems],
            "ok": self.ok,
        }


def _timeline_entry(entry: TimelineEntry) -> dict[str, Any]:
    # Whole record: whatever the chain check hashed is what gets bundled.
    record = entry.to_dict() if isinstance(entry, Event) else entry
    return copy.deepcopy(dict(record))


def _embedded_attestation(attestation: Attestation | Mapping[str, Any]) -> dict[str, Any]:
    record = attestation.to_dict() if isinstance(attestation, Attestation) else attestation
    return {k: record.get(k) for k in ATTESTATION_FIELDS}


def bundle_hash(bundle: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical bundle with any bundle_signature removed."""
    unsigned = {k: v for k, v in bundle.items() if k != "bundle_signature"}
    return sha256_hex(canonical_json(unsigned))


def create_bundle(
    timeline: Sequence[TimelineEntry],
    attestation: Attestation | Mapping[str, Any] | None = None,
    private_key: KeyMaterial | None = None,
    key_id: str | None = None,
    *,
    clock: Callable[[], str] = utc_now_iso,
) -> dict[str, Any]:
    """
    Package a timeline into a bundle.

    The bundle is signed only when both ``private_key`` and ``key_id``
    are given. The signature is computed last, over every other field.

    Args:
        timeline: Events (or event dicts) of one document, oldest first
        attestation: Optional attestation to embed
        private_key: Optional RSA or Ed25519 private key for the bundle signature
        key_id: Identifier of the signing key

    Returns:
        Bundle dict (JSON-serializable)

    Raises:
        EmptyTimelineError: If the timeline has no events
    """
    if not timeline:
        raise EmptyTimelineError("Timeline is empty")

    check = verify_chain(timeline)
    entries = [_timeline_entry(e) for e in timeline]

    chain_verification: dict[str, Any] = {
        "verified": check.ok,
        "head_event_hash": entries[-1].get("event_hash"),
        "event_count": len(entries),
    }
    if check.problems:
        chain_verification["problems"] = [p.to_dict() for p in check.problems]

    bundle: dict[str, Any] = {
        "bundle_version": BUNDLE_VERSION,
        "document_id": entries[0].get("document_id"),
        "created_at": clock(),
        "timeline": entries,
        "chain_verification": chain_verification,
    }

    if attestation is not None:
        bundle["attestation"] = _embedded_attestation(attestation)

    if private_key is not None and key_id:
        key_obj = load_private_key(private_key)
        alg = algorithm_for_key(key_obj)
        signed_hash = bundle_hash(bundle)
        bundle["bundle_signature"] = {
            "alg": alg,
            "key_id": key_id,
            "signature": sign_digest(signed_hash, key_obj, alg),
            "signed_hash": signed_hash,
        }

    logger.info(
        "bundle_created",
        extra={
            "document_id": bundle["document_id"],
            "event_count": len(entries),
            "chain_verified": check.ok,
            "signed": "bundle_signature" in bundle,
            "attested": "attestation" in bundle,
        },
    )
    return bundle


def _verify_bundle_signature(
    bundle: Mapping[str, Any],
    public_key: PublicKeyMaterial,
    problems: list[Problem],
) -> bool:
    signature = bundle["bundle_signature"]
    try:
        recomputed = bundle_hash(bundle)
        if not isinstance(signature, Mapping):
            raise ValueError("bundle_signature must be an object")
        if not isinstance(signature.get("alg"), str):
            raise ValueError("bundle_signature.alg must be a string")
    except (TypeError, ValueError) as exc:
        problems.append(Problem(
            code=ProblemCode.SIGNATURE_ERROR,
            details={"message": str(exc)},
        ))
        return False

    if not _safe_equal(recomputed, signature.get("signed_hash")):
        problems.append(Problem(
            code=ProblemCode.BUNDLE_HASH_MISMATCH,
            details={"expected_hash": recomputed, "got_hash": signature.get("signed_hash")},
        ))
        return False

    valid = verify_digest(
        recomputed,
        signature.get("signature"),
        public_key,
        normalize_algorithm(signature["alg"]),
    )
    if not valid:
        problems.append(Problem(
            code=ProblemCode.SIGNATURE_INVALID,
            details={"key_id": signature.get("key_id")},
        ))
    return valid


def verify_bundle(
    bundle: Mapping[str, Any],
    public_key: PublicKeyMaterial | None = None,
) -> BundleVerification:
    """
    Independently re-verify a bundle. Never mutates it, never raises on
    a bad bundle.

    - bundle_version must match
    - the timeline is re-verified from scratch (the recorded
      chain_verification is not trusted)
    - with a public key, the bundle signature is checked; a recomputed
      hash that differs from signed_hash is reported as
      BUNDLE_HASH_MISMATCH without touching the signature

    Args:
        bundle: Bundle document
        public_key: Key for the bundle signature (PEM, base64 or key object)

    Returns:
        BundleVerification; bundle_signature_verified is None when there
        was no signature or no key to check it with
    """
    problems: list[Problem] = []
    timeline = bundle.get("timeline")

    version_ok = bundle.get("bundle_version") == BUNDLE_VERSION
    if not version_ok:
        problems.append(Problem(
            code=ProblemCode.UNSUPPORTED_VERSION,
            details={"expected_version": BUNDLE_VERSION, "got_version": bundle.get("bundle_version")},
        ))

    chain_verified = False
    if not timeline:
        problems.append(Problem(
            code=ProblemCode.EMPTY_TIMELINE,
            details={"message": "bundle has no timeline events"},
        ))
    elif not isinstance(timeline, list) or not all(isinstance(e, Mapping) for e in timeline):
        problems.append(Problem(
            code=ProblemCode.MALFORMED_TIMELINE,
            details={"message": "timeline must be a list of event objects"},
        ))
    else:
        try:
            check = verify_chain(timeline)
        except (TypeError, ValueError) as exc:
            problems.append(Problem(
                code=ProblemCode.MALFORMED_TIMELINE,
                details={"message": str(exc)},
            ))
        else:
            chain_verified = check.ok
            problems.extend(check.problems)

    signature_verified: bool | None = None
    if bundle.get("bundle_signature") and public_key is not None:
        signature_verified = _verify_bundle_signature(bundle, public_key, problems)

    result = BundleVerification(
        bundle_version_ok=version_ok,
        chain_verified=chain_verified,
        bundle_signature_verified=signature_verified,
        attestation_present=bool(bundle.get("attestation")),
        problems=problems,
    )
    if not result.ok:
        logger.warning(
            "bundle_verification_failed",
            extra={
                "document_id": bundle.get("document_id"),
                "problem_count": len(problems),
                "bundle_signature_verified": signature_verified,
            },
        )
    return result


def export_bundle_json(bundle: Mapping[str, Any]) -> str:
    """Bundle as indented JSON, for files and transport."""
    return json.dumps(bundle, indent=2, ensure_ascii=False)


def load_bundle_json(text: str | bytes) -> dict[str, Any]:
    """
    Parse bundle JSON produced by export_bundle_json.

    Raises:
        BundleFormatError: If the text is not a JSON object
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise BundleFormatError(f"Bundle is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise BundleFormatError("Bundle JSON must be an object")
    return data
