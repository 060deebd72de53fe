"""
Calculator endpoints
"""

from fastapi import APIRouter, Depends

from ..backoffice import BackOffice
from .dependencies import get_back_office
from .schemas import QuoteRequest, quote_to_dict


router = APIRouter()


@router.post("/quote")
async def quote_loan(
    request: QuoteRequest,
    back_office: BackOffice = Depends(get_back_office)
):
    """Preview loan terms for a price and down payment"""
    quote = back_office.quote(
        price=request.price,
        down_payment=request.down_payment,
        interest_rate=request.interest_rate,
        duration_months=request.duration_months,
        frequency=request.frequency
    )
    return quote_to_dict(quote)
