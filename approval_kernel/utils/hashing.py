"""
Deterministic hashing utilities.

All hashing in the approval kernel is deterministic and reproducible so the
action chain of a draft can be recomputed at any time.
"""

import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """Serialize types ``json`` does not handle natively.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, separators carry no whitespace, and UUID / datetime /
    enum values use one fixed representation.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Compute the hex SHA-256 of a payload's canonical JSON."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_action(
    draft_id: UUID,
    seq: int,
    actor_id: UUID,
    kind: str,
    comment: str,
    occurred_at: datetime,
    approver_id: UUID | None,
    prev_hash: str | None,
) -> str:
    """
    Compute the chained hash of one action record.

    The previous action's hash is part of the input, so editing or removing
    any earlier entry changes every hash after it.

    Returns:
        Hex-encoded SHA-256 hash.
    """
    payload_hash = hash_payload({
        "draft_id": draft_id,
        "seq": seq,
        "actor_id": actor_id,
        "kind": kind,
        "comment": comment,
        "occurred_at": occurred_at,
        "approver_id": approver_id,
    })
    data = "|".join([str(draft_id), str(seq), payload_hash, prev_hash or "GENESIS"])
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
