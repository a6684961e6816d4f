"""
MiniBank API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..bank import Bank
from .sessions import router as sessions_router
from .accounts import router as accounts_router
from .workflows import router as workflows_router
from .admin import router as admin_router
from .reporting import router as reporting_router
from .feedback import router as feedback_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close the engine on shutdown"""
    yield
    app.state.bank.close()


def create_app(bank: Optional[Bank] = None) -> FastAPI:
    """Create and configure the FastAPI application around one engine"""
    app = FastAPI(
        title="MiniBank API",
        description="Ledger and approval-workflow engine for a small bank",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.bank = bank if bank is not None else Bank()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(sessions_router, prefix="/auth", tags=["Sessions"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(workflows_router, prefix="/workflows", tags=["Workflows"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])
    app.include_router(reporting_router, prefix="/reports", tags=["Reports"])
    app.include_router(feedback_router, prefix="/support", tags=["Feedback"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "minibank_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "MiniBank API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": "/auth",
                "accounts": "/accounts",
                "workflows": "/workflows",
                "admin": "/admin",
                "reports": "/reports",
                "support": "/support",
            }
        }

    return app
