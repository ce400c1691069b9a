"""
GeoExport — FastAPI Application
====================================
Exports feature-service layers as GeoJSON or CSV downloads, with
client-side reprojection to the standard reference system.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from geoexport import __version__
from geoexport.config import get_settings
from geoexport.routers import exports
from geoexport.services.orchestrator import clear_export_orchestrators
from geoexport.services.retriever import get_feature_retriever

logger = logging.getLogger(__name__)
settings = get_settings()


# ── Lifespan (startup / shutdown) ─────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
        - Open the pooled HTTP client used for feature-service requests.
    Shutdown:
        - Close it and drop the per-view export orchestrators.
    """
    logger.info("%s starting up...", settings.app_name)
    retriever = get_feature_retriever()
    retriever.open()

    yield

    await retriever.aclose()
    clear_export_orchestrators()
    logger.info("%s shut down.", settings.app_name)


# ── App factory ───────────────────────────────────────────────────
def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        description=(
            "Download feature-service layers as GeoJSON or CSV, "
            "reprojected to a standard reference system on demand."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    # CORS for the map frontend (configurable via GEOEXPORT_CORS_ORIGINS).
    # Content-Disposition must be exposed so the browser sees the filename.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Feature-Count"],
    )

    app.include_router(exports.router, prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": settings.app_name}

    return app


# ── Module-level app instance (for `uvicorn geoexport.main:app`) ──
app = create_app()  # pragma: no cover
