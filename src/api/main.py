import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.api.deps import get_settings
from src.app_shell.config import ConfigurationError, validate_ops_rules
from src.rules.loader import load_rules

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    settings = get_settings()

    # Load rules and validate on startup (fail-fast)
    try:
        rules = load_rules(settings.rules_path)
        validate_ops_rules(rules, settings.data_dir)
        SQLiteMigrator(settings.db_path).run_migrations()
        logger.info("Rules loaded from %s", settings.rules_path)
    except (FileNotFoundError, ValueError, ConfigurationError, RuntimeError) as e:
        logger.critical("Startup failed: %s", e)
        sys.exit(1)

    yield


app = FastAPI(
    title="Property Analytics API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from src.api.routes import property_analytics, tracking  # noqa: E402

app.include_router(property_analytics.router, prefix="/api/properties", tags=["Analytics"])
app.include_router(property_analytics.agents_router, prefix="/api/agents", tags=["Analytics"])
app.include_router(tracking.router, prefix="/api/properties", tags=["Tracking"])


# CORS (listing pages post tracking data from the browser)
origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "api"}
