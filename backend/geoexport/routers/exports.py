"""
Export Endpoints
================
Trigger GeoJSON / tabular downloads of a feature-service layer and
expose the per-view lane state used to disable busy triggers.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from geoexport.errors import ExportError, FetchError
from geoexport.schemas.export import (
    DownloadOptions,
    DownloadOptionsRequest,
    ExportRequest,
    ExportStateOut,
)
from geoexport.services.orchestrator import (
    ExportOrchestrator,
    ExportStatus,
    download_options,
    get_export_orchestrator,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/exports", tags=["Exports"])


def get_view_orchestrator(view_id: str) -> ExportOrchestrator:
    """FastAPI dependency — the orchestrator owning *view_id*'s lanes."""
    return get_export_orchestrator(view_id)


def _failure_status(error: ExportError | None) -> int:
    if isinstance(error, FetchError):
        return 502
    if isinstance(error, ExportError):
        return 422
    return 500


# ── Option visibility ─────────────────────────────────────────────
@router.post("/options", response_model=DownloadOptions)
async def export_options(req: DownloadOptionsRequest):
    """Which of the "download all" / "keep native projection" options apply."""
    return download_options(
        max_features=req.max_features,
        total_feature_count=req.total_feature_count,
        loaded_feature_count=req.loaded_feature_count,
        source_projection=req.source_projection,
    )


# ── Lane state ────────────────────────────────────────────────────
@router.get("/{view_id}/state", response_model=ExportStateOut)
async def export_state(
    orchestrator: ExportOrchestrator = Depends(get_view_orchestrator),
):
    return orchestrator.state()


# ── Run an export ─────────────────────────────────────────────────
@router.post("/{view_id}")
async def run_export(
    view_id: str,
    req: ExportRequest,
    orchestrator: ExportOrchestrator = Depends(get_view_orchestrator),
):
    """
    Export the layer in the requested format and return it as an
    attachment.

    - 409 when the same format is already exporting for this view.
    - 502 when the feature service fails.
    - 422 when the data cannot be parsed, reprojected or encoded.
    """
    outcome = await orchestrator.export(req)

    if outcome.status is ExportStatus.REJECTED:
        raise HTTPException(
            409, f"A {req.format.value} export is already running for this view"
        )
    if outcome.status is ExportStatus.FAILED:
        raise HTTPException(_failure_status(outcome.error), outcome.message)

    artifact = outcome.artifact
    logger.debug("Serving %s to view=%s", artifact.filename, view_id)
    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={
            "Content-Disposition": artifact.content_disposition,
            "X-Feature-Count": str(outcome.feature_count),
        },
    )
