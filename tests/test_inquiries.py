"""
Test suite for the sales inquiry pipeline
"""

import pytest
from datetime import date

from asset_finance.audit import AuditEventType
from asset_finance.exceptions import NotFoundError, PreconditionError, ValidationError
from asset_finance.inquiries import InquiryManager, InquiryStatus, SaleType


class TestSubmitInquiry:
    """Test inquiry submission"""

    @pytest.fixture(autouse=True)
    def _manager(self, storage, audit_trail):
        self.audit_trail = audit_trail
        self.manager = InquiryManager(storage, audit_trail)

    def test_submit_defaults(self):
        """Test submitted inquiry defaults"""
        inquiry = self.manager.submit_inquiry("  Nakato Sarah ", "+256701000222",
                                              product_interest="TVS King tricycle")

        assert inquiry.full_name == "Nakato Sarah"
        assert inquiry.status == InquiryStatus.NEW
        assert inquiry.sale_type == SaleType.LOAN
        assert self.manager.get_inquiry(inquiry.id) == inquiry

    def test_submit_is_audited_without_actor(self):
        """Test anonymous submissions are audited"""
        inquiry = self.manager.submit_inquiry("Nakato Sarah", "+256701000222", sale_type="cash")

        events = self.audit_trail.get_events_for_entity("inquiry", inquiry.id)
        assert [e.event_type for e in events] == [AuditEventType.INQUIRY_SUBMITTED]
        assert events[0].user_id is None

    def test_name_too_short(self):
        """Test single-character names are rejected"""
        with pytest.raises(ValidationError):
            self.manager.submit_inquiry("N", "+256701000222")

    def test_phone_required(self):
        """Test phone number is required"""
        with pytest.raises(ValidationError):
            self.manager.submit_inquiry("Nakato Sarah", "  ")

    def test_unknown_sale_type(self):
        """Test unknown sale type is rejected"""
        with pytest.raises(ValidationError):
            self.manager.submit_inquiry("Nakato Sarah", "+256701000222", sale_type="lease")

    def test_list_filters(self):
        """Test listing inquiries by status and sale type"""
        cash = self.manager.submit_inquiry("Cash Buyer", "0701", sale_type="cash")
        self.manager.submit_inquiry("Loan Buyer", "0702")

        assert [i.id for i in self.manager.list_inquiries(sale_type=SaleType.CASH)] == [cash.id]
        assert len(self.manager.list_inquiries(status=InquiryStatus.NEW)) == 2

    def test_require_missing(self):
        """Test missing inquiry raises not found"""
        with pytest.raises(NotFoundError):
            self.manager.require_inquiry("missing")


class TestInquiryPipeline:
    """Test status transitions"""

    @pytest.fixture(autouse=True)
    def _manager(self, storage, audit_trail):
        self.manager = InquiryManager(storage, audit_trail)
        self.loan_inquiry = self.manager.submit_inquiry("Loan Buyer", "0702")
        self.cash_inquiry = self.manager.submit_inquiry("Cash Buyer", "0701", sale_type="cash")

    def _advance(self, inquiry_id, times):
        inquiry = None
        for _ in range(times):
            inquiry = self.manager.advance_inquiry(inquiry_id, "fo-1")
        return inquiry

    def test_first_contact_stamps_follow_up(self):
        """Test first contact records who followed up"""
        inquiry = self._advance(self.loan_inquiry.id, 1)

        assert inquiry.status == InquiryStatus.CONTACTED
        assert inquiry.followed_up_by == "fo-1"
        assert inquiry.followed_up_at is not None

    def test_loan_inquiry_is_not_converted_by_advancing(self):
        """Test loan inquiries convert only through an application"""
        inquiry = self._advance(self.loan_inquiry.id, 2)
        assert inquiry.status == InquiryStatus.QUALIFIED

        with pytest.raises(PreconditionError):
            self.manager.advance_inquiry(self.loan_inquiry.id, "fo-1")
        assert self.manager.get_inquiry(self.loan_inquiry.id).status == InquiryStatus.QUALIFIED

    def test_cash_sale_converts_and_completes(self):
        """Test cash sale conversion and completion"""
        inquiry = self._advance(self.cash_inquiry.id, 3)
        assert inquiry.status == InquiryStatus.CONVERTED

        closed = self.manager.complete_cash_sale(self.cash_inquiry.id, "ops-1",
                                                 on_date=date(2026, 2, 14))

        assert closed.status == InquiryStatus.CLOSED
        assert closed.notes == "[2026-02-14] Asset assigned - Sale completed by Operations"

    def test_complete_cash_sale_requires_converted_cash_inquiry(self):
        """Test cash sale completion preconditions"""
        with pytest.raises(PreconditionError):
            self.manager.complete_cash_sale(self.cash_inquiry.id, "ops-1")
        with pytest.raises(PreconditionError):
            self.manager.complete_cash_sale(self.loan_inquiry.id, "ops-1")

    def test_terminal_inquiries_do_not_advance(self):
        """Test closed and converted inquiries do not advance"""
        self.manager.close_inquiry(self.loan_inquiry.id, "fo-1")

        with pytest.raises(PreconditionError):
            self.manager.advance_inquiry(self.loan_inquiry.id, "fo-1")

    def test_close_appends_reason(self):
        """Test closing appends the reason to notes"""
        self.manager.update_inquiry(self.loan_inquiry.id, "fo-1", notes="Called twice")
        closed = self.manager.close_inquiry(self.loan_inquiry.id, "fo-1", "Bought elsewhere")

        assert closed.status == InquiryStatus.CLOSED
        assert closed.notes == "Called twice\nBought elsewhere"

    def test_close_twice_fails(self):
        """Test closing a closed inquiry fails"""
        self.manager.close_inquiry(self.loan_inquiry.id, "fo-1")

        with pytest.raises(PreconditionError):
            self.manager.close_inquiry(self.loan_inquiry.id, "fo-1")

    def test_mark_converted_from_any_open_status(self):
        """Test conversion from every open status"""
        converted = self.manager.mark_converted(self.loan_inquiry.id, "fo-1")

        assert converted.status == InquiryStatus.CONVERTED
        with pytest.raises(PreconditionError):
            self.manager.mark_converted(self.loan_inquiry.id, "fo-1")


class TestUpdateInquiry:
    """Test editing inquiries"""

    @pytest.fixture(autouse=True)
    def _manager(self, storage, audit_trail):
        self.manager = InquiryManager(storage, audit_trail)
        self.inquiry = self.manager.submit_inquiry("Loan Buyer", "0702")

    def test_update_open_inquiry(self):
        """Test editing an open inquiry"""
        updated = self.manager.update_inquiry(self.inquiry.id, "fo-1",
                                              district="Mbale", assigned_to="fo-2")

        assert updated.district == "Mbale"
        assert updated.assigned_to == "fo-2"
        assert updated.status == InquiryStatus.NEW

    def test_status_is_not_editable(self):
        """Test status cannot be changed through update"""
        with pytest.raises(ValidationError):
            self.manager.update_inquiry(self.inquiry.id, "fo-1", status="converted")

    def test_closed_inquiry_is_read_only(self):
        """Test closed inquiries cannot be edited"""
        self.manager.close_inquiry(self.inquiry.id, "fo-1")

        with pytest.raises(PreconditionError):
            self.manager.update_inquiry(self.inquiry.id, "fo-1", district="Mbale")
        assert self.manager.get_inquiry(self.inquiry.id).district is None
