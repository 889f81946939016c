"""SaveStack capability service - FastAPI Application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from savestack.config import get_settings
from savestack.database import close_db, create_db_engine, create_session_maker, init_db
from savestack.dependencies import get_engine
from savestack.models import FailureCode, SystemHealth
from savestack.services.engine import CapabilityEngine
from savestack.services.local_store import JsonFileKeyValueStore

# Import routes
from savestack.routes import capability, onboarding, session

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()

    # Ensure directories exist
    settings.data_dir.mkdir(parents=True, exist_ok=True)

    logger.info("SaveStack capability service starting...")
    logger.info(f"Database URL: {settings.database_url.split('@')[1] if '@' in settings.database_url else 'local'}")

    db_engine = create_db_engine(settings.database_url, echo=settings.debug)
    if settings.create_tables_on_startup:
        await init_db(db_engine)

    # Cache and capability state are built before the first resolution
    engine = CapabilityEngine(
        settings=settings,
        session_maker=create_session_maker(db_engine),
        local_store=JsonFileKeyValueStore(settings.local_cache_path),
    )
    app.state.engine = engine
    await engine.start()
    logger.info(f"AI capability after startup sync: {engine.state.status.value}")

    yield

    # Cleanup
    logger.info("Shutting down...")
    engine.stop()
    await close_db(db_engine)


# Create FastAPI app
app = FastAPI(
    title="SaveStack Capability Service",
    description="AI credential resolution and capability gating for SaveStack",
    version="1.1.0",
    lifespan=lifespan,
)

# CORS middleware for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # Vite dev server
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(session.router, prefix="/api/session", tags=["session"])
app.include_router(capability.router, prefix="/api/capability", tags=["capability"])
app.include_router(onboarding.router, prefix="/api/onboarding", tags=["onboarding"])


# Health check endpoint
@app.get("/health", response_model=SystemHealth)
async def health_check(engine: CapabilityEngine = Depends(get_engine)) -> SystemHealth:
    """Health check endpoint for container orchestration.

    A missing secrets table is a deployment problem, reported as
    STORE_UNAVAILABLE rather than as an auth failure.
    """
    store_error = await engine.vault.check_store()
    if store_error is FailureCode.STORE_UNAVAILABLE:
        engine.signals.request_store_diagnostic(store_error.value)

    return SystemHealth(
        status="healthy" if store_error is None else "degraded",
        secret_store="ok" if store_error is None else store_error.value,
        fallback_credential=engine.settings.has_fallback_key,
        capability=engine.state.status,
    )


def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("savestack.main:app", host="0.0.0.0", port=settings.web_port)


if __name__ == "__main__":
    run()
