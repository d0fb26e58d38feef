"""
Ratemap API — Application entry point.

Bootstraps FastAPI, wires up middleware and error handlers, registers route
groups, and manages the MongoDB connection lifecycle.

Run locally:
    uvicorn ratemap.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ratemap.core import database
from ratemap.core.config import settings
from ratemap.core.errors import RatemapError
from ratemap.core.rate_limit import limiter
from ratemap.routes.health import router as health_router
from ratemap.routes.heatmap import router as heatmap_router
from ratemap.routes.ratings import router as ratings_router

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Code before `yield` runs on startup; code after runs on shutdown."""
    logger.info(
        "Starting Ratemap API (env: %s, grid: %s°, jitter: ±%s°)",
        settings.environment, settings.grid_cell_size, settings.max_jitter,
    )
    # Looked up on the module so tests can patch the lifecycle functions.
    await database.connect_to_mongo()
    yield
    logger.info("Shutting down Ratemap API")
    await database.close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Ratemap API",
    description=(
        "Community neighbourhood ratings with privacy-protected locations "
        "and an aggregated heatmap."
    ),
    version="0.1.0",
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Errors ────────────────────────────────────────────────────────────────────
async def _ratemap_error_handler(request: Request, exc: RatemapError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "retryable": exc.retryable},
    )


app.add_exception_handler(RatemapError, _ratemap_error_handler)

# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Routes opt-in with @limiter.limit(...) + request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(ratings_router)
app.include_router(heatmap_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "Ratemap API",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
