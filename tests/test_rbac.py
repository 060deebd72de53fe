"""
Test suite for role-based access control
"""

import pytest

from asset_finance.exceptions import PermissionDeniedError
from asset_finance.loans import LoanStatus
from asset_finance.rbac import (
    ROLE_PERMISSIONS, SYSTEM_ACTOR, AccessPolicy, Actor, Permission, StaffRole
)

from conftest import START_DATE


class TestAccessPolicy:
    """Test role to permission mapping"""

    def setup_method(self):
        self.policy = AccessPolicy()

    def test_admin_roles_hold_every_permission(self):
        """Test admin roles hold every permission"""
        for role in (StaffRole.SUPER_ADMIN, StaffRole.ADMIN):
            actor = Actor("a", frozenset({role}))
            assert self.policy.permissions_for(actor) == set(Permission)

    def test_field_officer_cannot_approve(self):
        """Test field officer lacks approval permission"""
        actor = Actor("fo", frozenset({StaffRole.FIELD_OFFICER}))

        assert self.policy.has_permission(actor, Permission.CREATE_APPLICATION)
        assert not self.policy.has_permission(actor, Permission.APPROVE_LOAN)
        assert not self.policy.has_permission(actor, Permission.CONFIRM_PAYMENT)

    def test_accountant_reconciles_but_does_not_confirm(self):
        """Test accountant reconciles but does not confirm"""
        actor = Actor("acc", frozenset({StaffRole.ACCOUNTANT}))

        assert self.policy.has_permission(actor, Permission.RECONCILE_PAYMENT)
        assert not self.policy.has_permission(actor, Permission.CONFIRM_PAYMENT)

    def test_client_role_has_no_permissions(self):
        """Test client role has no permissions"""
        assert ROLE_PERMISSIONS[StaffRole.CLIENT] == frozenset()
        assert self.policy.permissions_for(Actor("c", frozenset({StaffRole.CLIENT}))) == set()

    def test_roles_combine(self):
        """Test permissions combine across roles"""
        actor = Actor("x", frozenset({StaffRole.ACCOUNTANT, StaffRole.OPERATIONS_OFFICER}))
        granted = self.policy.permissions_for(actor)

        assert Permission.RECONCILE_PAYMENT in granted
        assert Permission.RECORD_ASSET_IDENTIFIERS in granted

    def test_require_raises(self):
        """Test require raises permission denied"""
        actor = Actor("fo", frozenset({StaffRole.FIELD_OFFICER}))

        with pytest.raises(PermissionDeniedError, match="approve_loan"):
            self.policy.require(actor, Permission.APPROVE_LOAN)

    def test_custom_role_table(self):
        """Test policy with a custom role table"""
        policy = AccessPolicy({StaffRole.CLIENT: frozenset({Permission.VIEW_LOANS})})

        assert policy.has_permission(Actor("c", frozenset({StaffRole.CLIENT})), Permission.VIEW_LOANS)

    def test_system_actor(self):
        """Test system actor holds every permission"""
        assert self.policy.has_permission(SYSTEM_ACTOR, Permission.RUN_JOBS)


class TestActor:
    """Test actor construction from identity provider role names"""

    def test_from_role_names(self):
        """Test building an actor from role names"""
        actor = Actor.from_role_names("fo-1", ["Field_Officer", " accountant ", ""])

        assert actor.roles == frozenset({StaffRole.FIELD_OFFICER, StaffRole.ACCOUNTANT})

    def test_unknown_roles_are_ignored(self):
        """Test unknown role names are ignored"""
        actor = Actor.from_role_names("x", ["janitor"])

        assert actor.roles == frozenset()


class TestBackOfficeEnforcement:
    """Test that operations check the actor before changing state"""

    def test_field_officer_cannot_approve_loan(self, back_office, field_officer, pending_loan):
        """Test back office refuses approval by a field officer"""
        back_office.start_review(field_officer, pending_loan.id)
        back_office.assign_asset_identifiers(field_officer, pending_loan.asset_id,
                                             "MD2A11CZ5KWA12345", "UEX 123A")
        back_office.complete_kyc_review(field_officer, pending_loan.id)

        with pytest.raises(PermissionDeniedError):
            back_office.approve_loan(field_officer, pending_loan.id, START_DATE)

        loan = back_office.get_loan(field_officer, pending_loan.id)
        assert loan.status == LoanStatus.AWAITING_APPROVAL
        assert back_office.get_schedule(field_officer, pending_loan.id) == []

    def test_client_cannot_view_loans(self, back_office, client_actor, pending_loan):
        """Test back office refuses loan views to clients"""
        with pytest.raises(PermissionDeniedError):
            back_office.get_loan(client_actor, pending_loan.id)

    def test_accountant_cannot_confirm_payment(self, back_office, accountant, active_loan):
        """Test back office refuses confirmation by an accountant"""
        payment = back_office.record_payment(accountant, active_loan.id, "28889", "cash")

        with pytest.raises(PermissionDeniedError):
            back_office.confirm_payment(accountant, payment.id)
