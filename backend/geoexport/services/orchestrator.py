"""
Export Orchestrator
===================
Coordinates the two export lanes (GeoJSON and tabular) of a map view.

Lane Model
----------
Each ``ExportFormat`` has its own ``LaneState`` (``IDLE`` / ``BUSY``).
A lane runs retrieve → (optional) reproject → serialize → export strictly
in sequence; the two lanes are independent and may run concurrently.

The BUSY check-and-set happens before the first ``await``, so on a
single asyncio loop no lock is needed: a second trigger on a busy lane
is rejected without touching the feature service.  The lane is reset in
a ``finally`` block on every exit path.

Error Handling
--------------
Every ``ExportError`` (fetch, parse, geometry, serialization) and any
unexpected exception is caught here, logged, reported once through the
``notify`` callback, and turned into a ``FAILED`` outcome.  Nothing is
handed to the ``ArtifactExporter`` unless serialization fully
succeeded.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterator

from geoexport.config import get_settings
from geoexport.errors import ExportError
from geoexport.schemas.export import (
    DownloadOptions,
    ExportFormat,
    ExportRequest,
    ExportStateOut,
    LayerDescriptor,
)
from geoexport.services.exporter import ArtifactExporter, SavedArtifact
from geoexport.services.retriever import FeatureRetriever, get_feature_retriever
from geoexport.services.serializers import (
    GEOJSON_MIME_TYPE,
    TABULAR_MIME_TYPE,
    to_geojson,
    to_tabular,
)
from geoexport.spatial.crs import normalize_projection_code, same_projection
from geoexport.spatial.geometry import parse_feature_collection
from geoexport.spatial.reproject import reproject_collection

logger = logging.getLogger(__name__)
settings = get_settings()

Notifier = Callable[[str], None]

GENERIC_FAILURE_MESSAGE = "Failed to download data. Please try again."


class LaneState(str, Enum):
    IDLE = "idle"
    BUSY = "busy"


class ExportStatus(str, Enum):
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ExportOutcome:
    """Result of one export trigger."""

    status: ExportStatus
    format: ExportFormat
    artifact: SavedArtifact | None = None
    error: ExportError | None = None
    message: str | None = None
    feature_count: int = 0


# ═══════════════════════════════════════════════════════════════════
# Pure helpers
# ═══════════════════════════════════════════════════════════════════

def download_options(
    max_features: int,
    total_feature_count: int | None,
    loaded_feature_count: int,
    source_projection: str,
) -> DownloadOptions:
    """
    Which export options the view should offer.

    "Download all" only makes sense when the service holds more features
    than the view has loaded and than the configured cap; "keep native
    projection" only when the data is not already in the standard system.
    """
    show_all = (
        total_feature_count is not None
        and total_feature_count > 0
        and loaded_feature_count < total_feature_count
        and max_features < total_feature_count
    )
    show_native = not same_projection(source_projection, settings.standard_projection)
    return DownloadOptions(
        show_download_all=show_all,
        show_native_projection=show_native,
        native_projection_label=source_projection if show_native else None,
        total_feature_count=total_feature_count,
    )


def effective_max_features(request: ExportRequest) -> int:
    """Retrieval cap: 0 (everything) when "download all" is selected and offered."""
    options = download_options(
        request.max_features,
        request.total_feature_count,
        request.loaded_feature_count,
        request.source_projection,
    )
    if request.download_all and options.show_download_all:
        return 0
    return request.max_features


def derive_filename(
    layer: LayerDescriptor,
    fmt: ExportFormat,
    use_native_projection: bool,
) -> str:
    """``<layer id>_<projection label>.<ext>`` with every ':' replaced by '_'."""
    if use_native_projection:
        label = layer.default_projection or settings.native_projection_fallback_label
    else:
        label = settings.standard_projection_label
    stem = f"{layer.id}_{label}".replace(":", "_")
    return f"{stem}.{fmt.extension}"


# ═══════════════════════════════════════════════════════════════════
# ExportOrchestrator
# ═══════════════════════════════════════════════════════════════════

class ExportOrchestrator:
    """
    Owns the lane state of one map view and runs its exports.

    Parameters
    ----------
    retriever : FeatureRetriever
    exporter : ArtifactExporter, optional
    notify : callable, optional
        Receives the user-visible message of each failed export.
    """

    def __init__(
        self,
        retriever: FeatureRetriever,
        exporter: ArtifactExporter | None = None,
        notify: Notifier | None = None,
    ) -> None:
        self.retriever = retriever
        self.exporter = exporter or ArtifactExporter()
        self._notify = notify
        self._lanes: dict[ExportFormat, LaneState] = {
            fmt: LaneState.IDLE for fmt in ExportFormat
        }

    # ── Lane state ────────────────────────────────────────────

    def lane_state(self, fmt: ExportFormat) -> LaneState:
        return self._lanes[fmt]

    def is_busy(self, fmt: ExportFormat) -> bool:
        return self._lanes[fmt] is LaneState.BUSY

    @property
    def idle(self) -> bool:
        """True when no lane is exporting."""
        return all(s is LaneState.IDLE for s in self._lanes.values())

    def state(self) -> ExportStateOut:
        return ExportStateOut(
            exporting_geojson=self.is_busy(ExportFormat.GEOJSON),
            exporting_tabular=self.is_busy(ExportFormat.CSV),
        )

    @contextmanager
    def _busy(self, fmt: ExportFormat) -> Iterator[None]:
        self._lanes[fmt] = LaneState.BUSY
        try:
            yield
        finally:
            self._lanes[fmt] = LaneState.IDLE

    # ── Export ────────────────────────────────────────────────

    async def export(
        self,
        request: ExportRequest,
        notify: Notifier | None = None,
    ) -> ExportOutcome:
        """
        Run one export on the request's lane.

        Returns a ``REJECTED`` outcome without side effects when the lane
        is already busy.
        """
        fmt = request.format
        if self.is_busy(fmt):
            logger.info("Export rejected: %s lane busy for layer=%s", fmt.value, request.layer.id)
            return ExportOutcome(status=ExportStatus.REJECTED, format=fmt)

        with self._busy(fmt):
            try:
                artifact, count = await self._run(request)
            except ExportError as e:
                logger.warning(
                    "Export failed: layer=%s, format=%s, error=%s",
                    request.layer.id, fmt.value, e,
                )
                self._report(e.message, notify)
                return ExportOutcome(
                    status=ExportStatus.FAILED, format=fmt, error=e, message=e.message,
                )
            except Exception:
                logger.exception("Export failed unexpectedly: layer=%s", request.layer.id)
                self._report(GENERIC_FAILURE_MESSAGE, notify)
                return ExportOutcome(
                    status=ExportStatus.FAILED, format=fmt, message=GENERIC_FAILURE_MESSAGE,
                )

        logger.info(
            "Export complete: layer=%s, format=%s, features=%d, file=%s",
            request.layer.id, fmt.value, count, artifact.filename,
        )
        return ExportOutcome(
            status=ExportStatus.COMPLETED, format=fmt, artifact=artifact, feature_count=count,
        )

    def _report(self, message: str, notify: Notifier | None) -> None:
        target = notify or self._notify
        if target is not None:
            target(message)

    async def _run(self, request: ExportRequest) -> tuple[SavedArtifact, int]:
        fmt = request.format
        layer = request.layer
        max_features = effective_max_features(request)
        # Forced native retrieval when the standard-projection path is unreliable
        use_native_projection = request.projection_issue

        raw = await self.retriever.fetch(
            request.service_url,
            layer.id,
            max_features,
            layer,
            use_native_projection,
            True,
        )
        collection = parse_feature_collection(raw)

        if fmt is ExportFormat.CSV:
            # No geometry in tabular output, so no reprojection
            payload = to_tabular(collection)
            mime_type = TABULAR_MIME_TYPE
        else:
            source = collection.crs or request.source_projection
            collection = replace(collection, crs=normalize_projection_code(source))
            if not request.keep_native_projection and not same_projection(
                source, settings.standard_projection
            ):
                collection = reproject_collection(
                    collection, source, settings.standard_projection,
                )
            payload = to_geojson(collection, settings.standard_projection)
            mime_type = GEOJSON_MIME_TYPE

        # Label follows how the data was retrieved; keep_native_projection alone
        # leaves a WGS84 label
        filename = derive_filename(layer, fmt, use_native_projection)
        artifact = self.exporter.export(payload, mime_type, filename)
        return artifact, len(collection)


# ── Per-view registry ─────────────────────────────────────────────
MAX_IDLE_ORCHESTRATORS = 256

_orchestrators: OrderedDict[str, ExportOrchestrator] = OrderedDict()
_registry_lock = threading.Lock()


def get_export_orchestrator(view_id: str) -> ExportOrchestrator:
    """
    Return the orchestrator owning the lane state of one map view.

    Lane state must outlive individual requests, so orchestrators are
    kept per ``view_id``; all of them share the process-wide retriever.
    Least-recently-used entries are dropped once more than
    ``MAX_IDLE_ORCHESTRATORS`` are held, but only while both of their
    lanes are idle.  A view with an export in flight is never evicted.
    """
    with _registry_lock:
        orchestrator = _orchestrators.get(view_id)
        if orchestrator is not None:
            _orchestrators.move_to_end(view_id)
            return orchestrator

        orchestrator = ExportOrchestrator(retriever=get_feature_retriever())
        _orchestrators[view_id] = orchestrator
        _prune_idle()
        return orchestrator


def _prune_idle() -> None:
    excess = len(_orchestrators) - MAX_IDLE_ORCHESTRATORS
    if excess <= 0:
        return
    # Oldest first; the newest entry is the one just handed out
    for key in list(_orchestrators)[:-1]:
        if excess <= 0:
            break
        if _orchestrators[key].idle:
            del _orchestrators[key]
            excess -= 1
    if excess > 0:
        logger.debug("Orchestrator registry %d over limit; remaining views are busy", excess)


def clear_export_orchestrators() -> None:
    """Drop every registered orchestrator (used on shutdown and in tests)."""
    with _registry_lock:
        _orchestrators.clear()
