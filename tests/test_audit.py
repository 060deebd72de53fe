"""
Test suite for the hash-chained audit trail
"""

import pytest

from asset_finance.audit import AuditEventType, AuditTrail
from asset_finance.storage import InMemoryStorage


class TestAuditTrail:
    """Test audit event logging and chain verification"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit = AuditTrail(self.storage)

    def _log(self, entity_id="loan-1", event_type=AuditEventType.LOAN_STAGE_CHANGED, **metadata):
        return self.audit.log_event(
            event_type=event_type,
            entity_type="loan",
            entity_id=entity_id,
            metadata=metadata,
            user_id="fo-1"
        )

    def test_events_are_chained(self):
        """Test each event links to the previous hash"""
        first = self._log(**{"from": "pending", "to": "under_review"})
        second = self._log(**{"from": "under_review", "to": "awaiting_asset"})

        assert first.previous_hash == ""
        assert second.previous_hash == first.current_hash
        assert first.verify_hash()
        assert second.verify_hash()

    def test_verify_integrity_on_clean_chain(self):
        """Test verification of an untouched chain"""
        for _ in range(5):
            self._log()

        result = self.audit.verify_integrity()
        assert result["valid"] is True
        assert result["total_events"] == 5
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_tampered_metadata_is_detected(self):
        """Test edited metadata fails verification"""
        self._log(amount="28889")
        target = self._log(amount="28889")
        self._log(amount="28889")

        stored = self.storage.load("audit_events", target.id)
        stored["metadata"]["amount"] = "1"
        self.storage.save("audit_events", target.id, stored)

        result = self.audit.verify_integrity()
        assert result["valid"] is False
        assert [e["event_id"] for e in result["hash_errors"]] == [target.id]

    def test_deleted_event_breaks_chain(self):
        """Test removing an event breaks the chain"""
        self._log()
        removed = self._log()
        last = self._log()

        self.storage.delete("audit_events", removed.id)

        result = self.audit.verify_integrity()
        assert result["valid"] is False
        assert [e["event_id"] for e in result["chain_breaks"]] == [last.id]

    def test_events_for_entity(self):
        """Test retrieving events for one entity"""
        self._log(entity_id="loan-1")
        self._log(entity_id="loan-2")
        self._log(entity_id="loan-1", event_type=AuditEventType.LOAN_APPROVED)

        events = self.audit.get_events_for_entity("loan", "loan-1")
        assert [e.event_type for e in events] == [
            AuditEventType.LOAN_STAGE_CHANGED, AuditEventType.LOAN_APPROVED
        ]
        assert all(e.user_id == "fo-1" for e in events)

    def test_disabled_trail_writes_nothing(self):
        """Test disabled trail stores no events"""
        audit = AuditTrail(self.storage, enabled=False)

        assert audit.log_event(AuditEventType.PAYMENT_RECORDED, "payment", "pay-1") is None
        assert self.storage.count("audit_events") == 0

    def test_event_inside_rolled_back_unit_is_discarded(self):
        """Test events roll back with their unit of work"""
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self._log()
                raise RuntimeError("boom")

        assert self.storage.count("audit_events") == 0
        self._log()
        assert self.audit.verify_integrity()["valid"] is True
