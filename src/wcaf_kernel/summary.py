"""
Bundle summary utilities for human-readable inspection.

Extracts key metadata from bundles without modifying or verifying them.
"""

from typing import Any, Mapping


def bundle_summary(bundle: Mapping[str, Any]) -> dict[str, Any]:
    """
    Extract a human-readable summary from a bundle.

    Args:
        bundle: A bundle dict

    Returns:
        Dict with document_id, bundle_version, created_at, event_count,
        event_types, head_event_hash, chain_verified, attested and signed
    """
    timeline = bundle.get("timeline") or []
    check = bundle.get("chain_verification") or {}

    event_types = sorted(set(
        str(event.get("type", "unknown")) for event in timeline if isinstance(event, Mapping)
    ))

    return {
        "document_id": bundle.get("document_id", ""),
        "bundle_version": bundle.get("bundle_version", ""),
        "created_at": bundle.get("created_at", ""),
        "event_count": len(timeline),
        "event_types": event_types,
        "head_event_hash": check.get("head_event_hash") or "",
        "chain_verified": bool(check.get("verified")),
        "attested": bool(bundle.get("attestation")),
        "signed": bool(bundle.get("bundle_signature")),
    }


def format_bundle_summary(bundle: Mapping[str, Any]) -> str:
    """
    Format a bundle as a single-line human-readable string.

    Args:
        bundle: A bundle dict

    Returns:
        String like "INV-1 (wcaf-bundle-1.0) | 3 events [NOTE, VERIFY_RESULT] | 9f2c41d0ab... | signed"
    """
    s = bundle_summary(bundle)
    head = s["head_event_hash"]
    head_short = head[:12] + "..." if len(head) > 12 else head
    types = ", ".join(s["event_types"]) if s["event_types"] else "none"
    flags = [name for name in ("attested", "signed") if s[name]]
    if not s["chain_verified"]:
        flags.insert(0, "UNVERIFIED")
    line = f"{s['document_id']} ({s['bundle_version']}) | {s['event_count']} events [{types}] | {head_short}"
    if flags:
        line += " | " + ", ".join(flags)
    return line
