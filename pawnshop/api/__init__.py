"""
Pawnshop API Application Factory
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .. import __version__
from ..config import PawnshopConfig, get_config
from .collections import router as collections_router
from .customers import router as customers_router
from .deps import get_system
from .financial_years import router as financial_years_router
from .interest_rates import router as interest_rates_router
from .jewels import rates_router as jewel_rates_router, router as jewels_router
from .loans import router as loans_router
from .reports import day_book_router, ledger_router, overview_router, stock_router
from .trash import router as trash_router
from .vouchers import router as vouchers_router


def create_app(config: Optional[PawnshopConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    config = config or get_config()
    app = FastAPI(
        title=config.api_title,
        description="Loan lifecycle and jewelry pawn backend",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(customers_router, prefix="/customers", tags=["Customers"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(collections_router, prefix="/collections", tags=["Collections"])
    app.include_router(vouchers_router, prefix="/vouchers", tags=["Vouchers"])
    app.include_router(interest_rates_router, prefix="/interest-rates", tags=["Interest Rates"])
    app.include_router(jewels_router, prefix="/jewels", tags=["Jewels"])
    app.include_router(jewel_rates_router, prefix="/jewel-rates", tags=["Jewel Rates"])
    app.include_router(financial_years_router, prefix="/financial-years", tags=["Financial Years"])
    app.include_router(trash_router, prefix="/trash", tags=["Trash"])
    app.include_router(ledger_router, prefix="/ledger", tags=["Ledger"])
    app.include_router(stock_router, prefix="/stock-summary", tags=["Stock Summary"])
    app.include_router(day_book_router, prefix="/day-book", tags=["Day Book"])
    app.include_router(overview_router, prefix="/overview", tags=["Overview"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "pawnshop_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": config.api_title,
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "customers": "/customers",
                "loans": "/loans",
                "collections": "/collections",
                "vouchers": "/vouchers",
                "interest-rates": "/interest-rates",
                "jewels": "/jewels",
                "jewel-rates": "/jewel-rates",
                "financial-years": "/financial-years",
                "trash": "/trash",
                "ledger": "/ledger",
                "stock-summary": "/stock-summary",
                "day-book": "/day-book",
                "overview": "/overview",
            }
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False,
               log_level: str = "info"):
    """Run the FastAPI server"""
    uvicorn.run(
        "pawnshop.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level=log_level
    )


__all__ = ["create_app", "get_system", "run_server"]
