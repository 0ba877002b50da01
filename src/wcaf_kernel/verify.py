"""
Offline chain verification for wcaf-kernel.

Replays a timeline and reports every broken link and every event whose
content no longer matches its recorded hash. Pure: no I/O, never
mutates its input, never raises on a bad chain.
"""

import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Union

from .chain import GENESIS, Event, compute_event_hash
from .errors import Problem, ProblemCode

logger = logging.getLogger(__name__)

TimelineEntry = Union[Event, Mapping[str, Any]]


@dataclass(frozen=True)
class ChainVerification:
    """Result of verifying one timeline."""
    ok: bool
    problems: list[Problem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "problems": [p.to_dict() for p in self.problems],
        }


def _safe_equal(left: Any, right: Any) -> bool:
    """
    Constant-time string comparison to prevent timing side-channel attacks.
    """
    left = left if isinstance(left, str) else str(left or "")
    right = right if isinstance(right, str) else str(right or "")
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


def _as_record(entry: TimelineEntry) -> dict[str, Any]:
    if isinstance(entry, Event):
        return entry.to_dict()
    return dict(entry)


def verify_chain(timeline: Iterable[TimelineEntry]) -> ChainVerification:
    """
    Verify linkage and content hashes of an ordered timeline.

    For each position i:
    - prev_hash must equal the recorded event_hash of position i-1
      (GENESIS for i == 0), else CHAIN_BREAK
    - event_hash must equal SHA-256 of the canonical event minus
      event_hash, else HASH_MISMATCH

    The expected predecessor always advances to the *recorded* hash, so
    one tampered event is reported once instead of breaking every later
    link.

    Args:
        timeline: Events (or event dicts, as found in bundles), oldest first

    Returns:
        ChainVerification with ok flag and ordered problems
    """
    problems: list[Problem] = []
    expected_prev = GENESIS

    for index, entry in enumerate(timeline):
        record = _as_record(entry)
        got_prev = record.get("prev_hash")
        recorded_hash = record.get("event_hash")

        if not _safe_equal(got_prev, expected_prev):
            problems.append(Problem(
                code=ProblemCode.CHAIN_BREAK,
                index=index,
                details={"expected_prev": expected_prev, "got_prev": got_prev},
            ))

        core = {k: v for k, v in record.items() if k != "event_hash"}
        recomputed = compute_event_hash(core)
        if not _safe_equal(recorded_hash, recomputed):
            problems.append(Problem(
                code=ProblemCode.HASH_MISMATCH,
                index=index,
                details={"expected_hash": recomputed, "got_hash": recorded_hash},
            ))

        expected_prev = recorded_hash

    if problems:
        logger.warning(
            "chain_verification_failed",
            extra={
                "problem_count": len(problems),
                "first_problem_index": problems[0].index,
            },
        )

    return ChainVerification(ok=not problems, problems=problems)
