"""
Roster Import - Property Registry Import Service
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from roster_import.config import settings
from roster_import.database import engine, Base
from roster_import.errors import ImportPipelineError
from roster_import.routers import imports as imports_router
from roster_import.routers import templates as templates_router

APP_VERSION = "1.0.0"


def configure_logging():
    """Configure application logging."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    logger.info("Starting Roster Import service...")
    # Startup: Create database tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created/verified")
    yield
    # Shutdown: Clean up resources
    logger.info("Shutting down Roster Import service...")
    await engine.dispose()


app = FastAPI(
    title="Roster Import",
    description="Import unit rosters from spreadsheets and scanned documents",
    version=APP_VERSION,
    lifespan=lifespan
)


@app.exception_handler(ImportPipelineError)
async def import_pipeline_error_handler(request: Request, exc: ImportPipelineError):
    """Render pipeline errors as {"error": {code, message}, "detail": message}."""
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_dict(), "detail": exc.message}
    )


# Include routers
app.include_router(imports_router.router, prefix="/api/import", tags=["import"])
app.include_router(templates_router.router, prefix="/api/templates", tags=["templates"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": APP_VERSION}
