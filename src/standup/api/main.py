"""
Stand-Up API - Main FastAPI application
"""

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import (
    ConcurrencyConflictError,
    InvalidOperationError,
    NotFoundError,
    StandUpError,
    UpstreamFailureError,
)
from .routers import iterations, standup, work_items

# 服務錯誤對應的 HTTP 狀態碼（依序比對，子類別在前）
ERROR_STATUS_CODES: tuple[tuple[type[StandUpError], int], ...] = (
    (NotFoundError, 404),
    (InvalidOperationError, 400),
    (ConcurrencyConflictError, 409),
    (UpstreamFailureError, 502),
)


async def standup_error_handler(request: Request, exc: StandUpError) -> JSONResponse:
    """Translate service errors into HTTP responses"""
    status_code = next((code for cls, code in ERROR_STATUS_CODES if isinstance(exc, cls)), 500)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    load_dotenv()
    app = FastAPI(
        title="Stand-Up API",
        description="Reconcile Kimai time entries with Azure DevOps work items.",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # CORS middleware for frontend (local app mode)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StandUpError, standup_error_handler)

    app.include_router(standup.router, prefix="/api/standup", tags=["standup"])
    app.include_router(work_items.router, prefix="/api/work-items", tags=["work-items"])
    app.include_router(iterations.router, prefix="/api/iterations", tags=["iterations"])

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "ok", "version": __version__}

    return app


# Create the default app instance
app = create_app()
