"""
Shared fixtures for the asset finance test suite
"""

from datetime import date
from decimal import Decimal

import pytest

from asset_finance.assets import AssetType
from asset_finance.audit import AuditTrail
from asset_finance.backoffice import BackOffice
from asset_finance.config import AssetFinanceConfig
from asset_finance.loans import CatalogProduct
from asset_finance.rbac import Actor, StaffRole
from asset_finance.storage import InMemoryStorage, SQLiteStorage


START_DATE = date(2026, 1, 1)

BOXER = CatalogProduct(
    product_id="prod-boxer-150",
    name="Bajaj Boxer 150",
    asset_type=AssetType.MOTORCYCLE,
    brand="Bajaj",
    model="Boxer 150",
    price=Decimal("9000000"),
    down_payment_percent=Decimal("10"),
    interest_rate=Decimal("30"),
    loan_duration_months=12
)


def applicant(**overrides):
    """Minimal valid applicant fields"""
    data = {
        "full_name": "Okello James",
        "phone": "+256700123456",
        "address": "Plot 12, Gulu Road",
        "district": "Lira",
        "national_id": "CM90012345ABCD",
        "next_of_kin_name": "Akello Grace",
        "next_of_kin_phone": "+256772000111",
        "occupation": "Boda boda rider",
        "monthly_income": Decimal("900000"),
    }
    data.update(overrides)
    return data


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Every lifecycle test runs against both backends"""
    if request.param == "memory":
        store = InMemoryStorage()
    else:
        store = SQLiteStorage(tmp_path / "asset_finance.db")
    yield store
    store.close()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def config():
    return AssetFinanceConfig(database_url="memory://", auth_enabled=True)


@pytest.fixture
def back_office(storage, config):
    office = BackOffice(storage=storage, config=config)
    yield office
    office.close()


@pytest.fixture
def admin():
    return Actor("admin-1", frozenset({StaffRole.ADMIN}))


@pytest.fixture
def field_officer():
    return Actor("fo-1", frozenset({StaffRole.FIELD_OFFICER}))


@pytest.fixture
def accountant():
    return Actor("acc-1", frozenset({StaffRole.ACCOUNTANT}))


@pytest.fixture
def operations_admin():
    return Actor("ops-1", frozenset({StaffRole.OPERATIONS_ADMIN}))


@pytest.fixture
def client_actor():
    return Actor("client-1", frozenset({StaffRole.CLIENT}))


@pytest.fixture
def pending_loan(back_office, field_officer):
    """Daily loan on the Boxer with 1,000,000 down, still pending"""
    return back_office.create_application(
        field_officer, applicant(), BOXER, "daily", down_payment=Decimal("1000000")
    )


def activate(back_office, actor, loan, start_date=START_DATE):
    """Drive a pending loan through review, identification and approval"""
    back_office.start_review(actor, loan.id)
    back_office.assign_asset_identifiers(actor, loan.asset_id, "MD2A11CZ5KWA12345", "UEX 123A")
    back_office.complete_kyc_review(actor, loan.id)
    return back_office.approve_loan(actor, loan.id, start_date)


@pytest.fixture
def active_loan(back_office, admin, pending_loan):
    """The pending loan approved with repayments starting on START_DATE"""
    return activate(back_office, admin, pending_loan)
