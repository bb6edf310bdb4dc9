"""
Arisan API Application Factory
"""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .groups import router as groups_router
from .turns import router as turns_router
from .rounds import router as rounds_router
from .payments import router as payments_router
from .admin import router as admin_router
from .. import __version__
from ..logging_config import get_logger, log_action
from ..storage import NotFoundError, StorageError


logger = get_logger("arisan.api")


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def add_exception_handlers(app: FastAPI) -> None:
    """Map manager exceptions onto HTTP status codes"""

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, exc)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(400, exc)

    @app.exception_handler(PermissionError)
    async def permission_error_handler(request: Request, exc: PermissionError):
        return _error(403, exc)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        log_action(logger, "error", f"Storage failure: {exc}",
                   action=request.url.path, resource="storage")
        return _error(503, exc)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Arisan Ledger API",
        description="Bookkeeping for rotating savings groups (arisan)",
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

    add_exception_handlers(app)

    app.include_router(groups_router, prefix="/groups", tags=["Groups"])
    app.include_router(turns_router, prefix="/groups", tags=["Turns"])
    app.include_router(rounds_router, prefix="/groups", tags=["Rounds"])
    app.include_router(payments_router, prefix="/payments", tags=["Payments"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "arisan_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Arisan Ledger API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "groups": "/groups",
                "payments": "/payments",
                "admin": "/admin",
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "arisan.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
