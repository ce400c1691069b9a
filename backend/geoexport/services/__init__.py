"""Services subpackage — retrieval, serialization and export orchestration."""

from geoexport.services.exporter import ArtifactExporter, ArtifactHandle, SavedArtifact
from geoexport.services.orchestrator import (
    ExportOrchestrator,
    ExportOutcome,
    ExportStatus,
    LaneState,
    clear_export_orchestrators,
    derive_filename,
    download_options,
    effective_max_features,
    get_export_orchestrator,
)
from geoexport.services.retriever import FeatureRetriever, get_feature_retriever
from geoexport.services.serializers import to_geojson, to_tabular

__all__ = [
    "ArtifactExporter",
    "ArtifactHandle",
    "SavedArtifact",
    "ExportOrchestrator",
    "ExportOutcome",
    "ExportStatus",
    "LaneState",
    "clear_export_orchestrators",
    "derive_filename",
    "download_options",
    "effective_max_features",
    "get_export_orchestrator",
    "FeatureRetriever",
    "get_feature_retriever",
    "to_geojson",
    "to_tabular",
]
