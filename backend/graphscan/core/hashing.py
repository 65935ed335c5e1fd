import json
from typing import Any, Dict, Optional

FNV_OFFSET_BASIS_32 = 0x811C9DC5
FNV_PRIME_32 = 0x01000193


def stable_stringify(value: Any) -> str:
    """
    Serialize ``value`` to JSON with object keys sorted at every level.

    Arrays keep their order. ``None`` serializes as ``null``; absent
    optional fields must be left out of the mapping by the caller.
    """
    if isinstance(value, dict):
        entries = sorted(value.items(), key=lambda item: item[0])
        return "{" + ",".join(
            f"{json.dumps(key, ensure_ascii=False)}:{stable_stringify(entry)}"
            for key, entry in entries
        ) + "}"

    if isinstance(value, (list, tuple)):
        return "[" + ",".join(stable_stringify(entry) for entry in value) + "]"

    return json.dumps(value, ensure_ascii=False)


def fnv1a_32(data: bytes) -> str:
    """32-bit FNV-1a as 8 lowercase hex characters"""
    digest = FNV_OFFSET_BASIS_32
    for byte in data:
        digest ^= byte
        digest = (digest * FNV_PRIME_32) & 0xFFFFFFFF
    return f"{digest:08x}"


def compute_snapshot_digest(
    workspace_id: str,
    scanner_name: str,
    snapshot: Dict[str, Any],
    scanner_version: Optional[str] = None,
) -> str:
    """
    Fingerprint an ingestion payload for deduplication.

    Not a security boundary: the idempotency key is the primary dedup axis
    and the digest only has to tell two payloads under one key apart.

    Args:
        workspace_id: Normalized workspace id
        scanner_name: Normalized scanner name
        snapshot: Snapshot in its wire (camelCase JSON) form
        scanner_version: Optional scanner version, omitted when None

    Returns:
        FNV-1a hexdigest of the canonical payload
    """
    canonical: Dict[str, Any] = {
        "workspaceId": workspace_id,
        "scannerName": scanner_name,
        "snapshot": snapshot,
    }
    if scanner_version is not None:
        canonical["scannerVersion"] = scanner_version

    return fnv1a_32(stable_stringify(canonical).encode("utf-8"))
