"""
Dealer Finance API Application Factory
"""

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .deps import DealerFinanceSystem, get_system
from .loans import router as loans_router
from .invoices import router as invoices_router
from .payments import router as payments_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Dealer Finance API",
        description="Loan amortization calculator and invoice payment ledger",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(invoices_router, prefix="/invoices", tags=["Invoices"])
    app.include_router(payments_router, tags=["Payments"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "dealer_finance_api",
            "version": __version__
        }

    @app.get("/audit/integrity")
    async def verify_audit_integrity(system: DealerFinanceSystem = Depends(get_system)):
        """Verify the audit hash chain"""
        if system.audit_trail is None:
            return {"enabled": False}
        result = system.audit_trail.verify_integrity()
        result["enabled"] = True
        return result

    return app


app = create_app()
