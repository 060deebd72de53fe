"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from datetime import date
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..assets import AssetType
from ..calculator import LoanQuote
from ..loans import CatalogProduct


# Calculator schemas
class QuoteRequest(BaseModel):
    price: Decimal
    down_payment: Decimal = Decimal('0')
    interest_rate: Optional[Decimal] = Field(None, description="Flat percent, defaults to configuration")
    duration_months: Optional[int] = None
    frequency: str = Field("daily", description="daily or weekly")


def quote_to_dict(quote: LoanQuote) -> Dict[str, Any]:
    return {
        "price": str(quote.price),
        "down_payment": str(quote.down_payment),
        "interest_rate": str(quote.interest_rate),
        "duration_months": quote.duration_months,
        "frequency": quote.frequency.value,
        "loan_amount": str(quote.loan_amount),
        "interest_amount": str(quote.interest_amount),
        "total_amount": str(quote.total_amount),
        "duration_days": quote.duration_days,
        "total_installments": quote.total_installments,
        "installment_amount": str(quote.installment_amount),
        "scheduled_total": str(quote.scheduled_total),
        "rounding_excess": str(quote.rounding_excess),
        "end_offset_days": quote.end_offset_days,
    }


# Inquiry schemas
class SubmitInquiryRequest(BaseModel):
    full_name: str
    phone: str
    sale_type: str = Field("loan", description="cash or loan")
    email: Optional[str] = None
    district: Optional[str] = None
    occupation: Optional[str] = None
    monthly_income: Optional[str] = None
    product_interest: Optional[str] = None
    message: Optional[str] = None


class UpdateInquiryRequest(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    district: Optional[str] = None
    occupation: Optional[str] = None
    monthly_income: Optional[str] = None
    product_interest: Optional[str] = None
    message: Optional[str] = None
    notes: Optional[str] = None
    assigned_to: Optional[str] = None


class ReasonRequest(BaseModel):
    reason: Optional[str] = None


# Client and asset schemas
class ApplicantModel(BaseModel):
    full_name: str
    phone: str
    address: str
    district: str
    national_id: Optional[str] = None
    phone_secondary: Optional[str] = None
    email: Optional[str] = None
    village: Optional[str] = None
    next_of_kin_name: Optional[str] = None
    next_of_kin_phone: Optional[str] = None
    next_of_kin_relationship: Optional[str] = None
    occupation: Optional[str] = None
    monthly_income: Optional[Decimal] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class CreateClientRequest(ApplicantModel):
    branch_id: Optional[str] = None


class RegisterAssetRequest(BaseModel):
    asset_type: str = Field(..., description="motorcycle or tricycle")
    brand: str
    model: str
    chassis_number: str
    selling_price: Optional[Decimal] = None
    purchase_price: Optional[Decimal] = None
    year: Optional[int] = None
    engine_number: Optional[str] = None
    registration_number: Optional[str] = None
    color: Optional[str] = None
    gps_device_id: Optional[str] = None
    branch_id: Optional[str] = None
    product_id: Optional[str] = None
    notes: Optional[str] = None


class AssetIdentifiersRequest(BaseModel):
    chassis_number: str
    registration_number: str
    engine_number: Optional[str] = None
    gps_device_id: Optional[str] = None


# Loan schemas
class CatalogProductModel(BaseModel):
    product_id: str
    name: str
    asset_type: AssetType
    brand: str
    model: str
    price: Decimal
    down_payment_percent: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None
    loan_duration_months: Optional[int] = None

    def to_product(self) -> CatalogProduct:
        return CatalogProduct(**self.model_dump())


class CreateApplicationRequest(BaseModel):
    applicant: ApplicantModel
    product: CatalogProductModel
    repayment_frequency: str = Field(..., description="daily or weekly")
    down_payment: Optional[Decimal] = None
    branch_id: Optional[str] = None
    inquiry_id: Optional[str] = None


class CreateLoanRequest(BaseModel):
    client_id: str
    asset_id: str
    repayment_frequency: str = Field(..., description="daily or weekly")
    down_payment: Decimal = Decimal('0')
    price: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None
    duration_months: Optional[int] = None
    branch_id: Optional[str] = None


class ApproveLoanRequest(BaseModel):
    start_date: Optional[date] = None


class NotesRequest(BaseModel):
    notes: Optional[str] = None


# Payment schemas
class RecordPaymentRequest(BaseModel):
    loan_id: str
    amount: Decimal
    payment_method: str = Field(..., description="mtn_momo, airtel_money, bank_transfer or cash")
    transaction_id: Optional[str] = None
    phone_number: Optional[str] = None


# Job schemas
class ReconcileJobRequest(BaseModel):
    as_of: Optional[date] = None
