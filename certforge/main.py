"""
FastAPI Application Entry Point
Main application setup, service wiring and route registration
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from certforge.config import settings
from certforge.database import connect_db, create_database, disconnect_db
from certforge.errors import CertForgeError, NotFoundError, StorageError, ValidationError
from certforge.services.certificate_service import CertificateService
from certforge.services.storage_service import StorageService

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the database and build the generation services"""
    database = create_database(settings.DATABASE_URL)
    await connect_db(database)
    storage = StorageService.from_settings(settings)
    app.state.database = database
    app.state.certificate_service = CertificateService.from_settings(settings, database, storage)
    logger.info("%s started in %s mode", settings.APP_NAME, settings.APP_ENV)
    try:
        yield
    finally:
        await disconnect_db(database)
        logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Batch certificate generation service",
    version="1.0.0",
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_status(exc: CertForgeError) -> int:
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, StorageError):
        return 409 if exc.conflict else 502
    return 500


@app.exception_handler(CertForgeError)
async def certforge_error_handler(request: Request, exc: CertForgeError):
    status_code = error_status(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__, "details": exc.details},
    )


# Health check endpoint
@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": "1.0.0"
    }


# Import and include routers
from certforge.routes import certificates, templates

app.include_router(certificates.router, prefix="/certificates", tags=["Certificates"])
app.include_router(templates.router, prefix="/templates", tags=["Templates"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "certforge.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
