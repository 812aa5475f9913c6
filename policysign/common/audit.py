"""
Tamper-evident hash chain for the signature event log.

Each document event stores the SHA-256 of its own content together with
the hash of the previous event of the same signature request, so any
edit, deletion or reordering of a stored entry breaks the chain.
"""

import hashlib
import json
from typing import Optional, Sequence


def canonical_json(data: Optional[dict]) -> str:
    if not data:
        return ""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def compute_integrity_hash(
    event_id: str,
    timestamp: str,
    signature_request_id: str,
    signer_id: Optional[str],
    event_type: str,
    metadata_json: Optional[str],
    previous_hash: Optional[str],
) -> str:
    """Compute the SHA-256 chain entry for one event."""
    payload = (
        f"{event_id}|{timestamp}|{signature_request_id}|{signer_id or ''}"
        f"|{event_type}|{metadata_json or ''}|{previous_hash or ''}"
    )
    return hashlib.sha256(payload.encode()).hexdigest()


def verify_chain(events: Sequence) -> list[str]:
    """Check a request's events, oldest first. Returns a list of problems."""
    errors: list[str] = []
    previous_hash = None
    for position, entry in enumerate(events, start=1):
        if entry.sequence != position:
            errors.append(f"Event {entry.id}: expected sequence {position}, found {entry.sequence}")
        if entry.previous_hash != previous_hash:
            errors.append(f"Event {entry.id}: previous_hash does not match the preceding event")
        expected = compute_integrity_hash(
            str(entry.id),
            entry.timestamp.isoformat(),
            str(entry.signature_request_id),
            str(entry.signer_id) if entry.signer_id else None,
            entry.event_type.value if hasattr(entry.event_type, "value") else entry.event_type,
            canonical_json(entry.event_metadata),
            entry.previous_hash,
        )
        if entry.integrity_hash != expected:
            errors.append(f"Event {entry.id}: integrity hash mismatch")
        previous_hash = entry.integrity_hash
    return errors
