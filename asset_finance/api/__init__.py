"""
Asset Finance API Application Factory
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..backoffice import BackOffice
from ..exceptions import (
    AssetFinanceError, ConsistencyError, NotFoundError, PermissionDeniedError,
    PreconditionError, ValidationError
)

from .calculator import router as calculator_router
from .inquiries import router as inquiries_router
from .clients import router as clients_router
from .assets import router as assets_router
from .loans import router as loans_router
from .payments import router as payments_router
from .recovery import router as recovery_router
from .admin import router as admin_router


logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (ValidationError, 422, "validation_error"),
    (PreconditionError, 409, "precondition_failed"),
    (NotFoundError, 404, "not_found"),
    (PermissionDeniedError, 403, "permission_denied"),
    (ConsistencyError, 500, "consistency_error"),
)


def _error_body(code: str, message: str, status_code: int) -> dict:
    return {"error": {"code": code, "message": message, "status_code": status_code}}


def create_app(back_office: Optional[BackOffice] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Asset Finance Back Office API",
        description="Loan lifecycle and repayment engine for motorcycle and tricycle financing",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.back_office = back_office or BackOffice()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AssetFinanceError)
    async def asset_finance_error_handler(request: Request, exc: AssetFinanceError):
        for error_type, status_code, code in ERROR_STATUS:
            if isinstance(exc, error_type):
                break
        else:
            status_code, code = 500, "internal_error"
        if status_code >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method,
                         request.url.path, exc)
        else:
            logger.warning("%s on %s %s: %s", type(exc).__name__, request.method,
                           request.url.path, exc)
        return JSONResponse(status_code=status_code,
                            content=_error_body(code, str(exc), status_code))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code,
                            content=_error_body("http_error", str(exc.detail), exc.status_code))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        body = _error_body("validation_error", "Request validation failed", 422)
        body["error"]["details"] = jsonable_encoder(exc.errors())
        return JSONResponse(status_code=422, content=body)

    app.include_router(calculator_router, prefix="/calculator", tags=["Calculator"])
    app.include_router(inquiries_router, prefix="/inquiries", tags=["Inquiries"])
    app.include_router(clients_router, prefix="/clients", tags=["Clients"])
    app.include_router(assets_router, prefix="/assets", tags=["Assets"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(payments_router, prefix="/payments", tags=["Payments"])
    app.include_router(recovery_router, prefix="/recovery", tags=["Recovery"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "asset_finance_api",
            "version": __version__
        }

    return app
