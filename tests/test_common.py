"""
Tests for common utility modules.

Covers encryption of signature payloads, the pagination helper, the
integrity hash, chain verification, domain error details and logging
setup.
"""

import hashlib
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import pytest

from policysign.common.audit import canonical_json, compute_integrity_hash, verify_chain
from policysign.common.encryption import decrypt_field, encrypt_field
from policysign.common.exceptions import to_http_exception
from policysign.common.pagination import PaginatedResponse, PaginationParams
from policysign.esign.exceptions import MissingRequiredField, TokenExpired, TokenRevoked
from policysign.logging_config import CorrelationIDFilter, configure_logging
from policysign.middleware import correlation_id_var


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

class TestEncryption:
    """encrypt_field / decrypt_field roundtrip."""

    def test_encrypt_decrypt_roundtrip(self):
        payload = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAE"
        ciphertext = encrypt_field(payload)
        assert ciphertext != payload
        assert decrypt_field(ciphertext) == payload

    def test_empty_values_pass_through(self):
        assert encrypt_field("") == ""
        assert encrypt_field(None) is None
        assert decrypt_field(None) is None

    def test_ciphertext_differs_each_time(self):
        assert encrypt_field("Ana Souza") != encrypt_field("Ana Souza")


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

class TestPagination:
    def test_offset(self):
        assert PaginationParams(page=3, page_size=20).offset == 40

    def test_page_size_bounds(self):
        with pytest.raises(ValueError):
            PaginationParams(page_size=0)
        with pytest.raises(ValueError):
            PaginationParams(page_size=101)

    def test_total_pages(self):
        resp = PaginatedResponse.create(items=[], total=51, pagination=PaginationParams(page=1, page_size=25))
        assert resp.total_pages == 3
        assert PaginatedResponse.create(items=[], total=50, pagination=PaginationParams(page_size=25)).total_pages == 2
        assert PaginatedResponse.create(items=[], total=0, pagination=PaginationParams()).total_pages == 0


# ---------------------------------------------------------------------------
# Integrity hash chain
# ---------------------------------------------------------------------------

@dataclass
class _Event:
    id: uuid.UUID
    sequence: int
    timestamp: datetime
    signature_request_id: uuid.UUID
    signer_id: Optional[uuid.UUID]
    event_type: str
    event_metadata: Optional[dict]
    previous_hash: Optional[str]
    integrity_hash: str = ""


def _chain(count: int) -> list[_Event]:
    request_id = uuid.uuid4()
    events = []
    previous = None
    for sequence in range(1, count + 1):
        event = _Event(
            id=uuid.uuid4(),
            sequence=sequence,
            timestamp=datetime(2030, 1, 15, 9, sequence, tzinfo=timezone.utc),
            signature_request_id=request_id,
            signer_id=None,
            event_type="sent",
            event_metadata={"channels": ["email"]},
            previous_hash=previous,
        )
        event.integrity_hash = compute_integrity_hash(
            str(event.id),
            event.timestamp.isoformat(),
            str(request_id),
            None,
            event.event_type,
            canonical_json(event.event_metadata),
            previous,
        )
        previous = event.integrity_hash
        events.append(event)
    return events


class TestIntegrityHash:
    def test_matches_sha256_of_joined_fields(self):
        expected = hashlib.sha256(b"e|t|r||signed|{}|prev").hexdigest()
        assert compute_integrity_hash("e", "t", "r", None, "signed", "{}", "prev") == expected

    def test_canonical_json_is_key_order_independent(self):
        assert canonical_json({"b": 1, "a": 2}) == canonical_json({"a": 2, "b": 1}) == '{"a":2,"b":1}'
        assert canonical_json(None) == ""

    def test_valid_chain(self):
        assert verify_chain(_chain(4)) == []

    def test_edited_metadata_detected(self):
        events = _chain(3)
        events[1].event_metadata = {"channels": ["sms"]}
        errors = verify_chain(events)
        assert len(errors) == 1
        assert "integrity hash mismatch" in errors[0]

    def test_deleted_event_detected(self):
        events = _chain(3)
        del events[1]
        errors = verify_chain(events)
        assert any("sequence" in e for e in errors)
        assert any("previous_hash" in e for e in errors)


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------

class TestDomainErrors:
    def test_default_message_from_docstring(self):
        assert TokenExpired().message == "Signing link has expired"

    def test_http_mapping(self):
        exc = to_http_exception(MissingRequiredField(fields=["signature_data"]))
        assert exc.status_code == 422
        assert exc.detail == {
            "code": "missing_required_field",
            "message": "Required fields are missing",
            "fields": ["signature_data"],
        }
        assert to_http_exception(TokenExpired()).status_code == 410
        assert to_http_exception(TokenRevoked()).status_code == 404


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

class TestLogging:
    def test_filter_adds_correlation_id(self):
        record = logging.LogRecord("policysign", logging.INFO, __file__, 1, "hello", None, None)
        token = correlation_id_var.set("req-7")
        try:
            assert CorrelationIDFilter().filter(record)
        finally:
            correlation_id_var.reset(token)
        assert record.correlation_id == "req-7"

    def test_configure_logging_is_idempotent(self):
        configure_logging("DEBUG")
        configure_logging("INFO")
        marked = [h for h in logging.getLogger().handlers if getattr(h, "_policysign", False)]
        assert len(marked) == 1
        assert logging.getLogger().level == logging.INFO
