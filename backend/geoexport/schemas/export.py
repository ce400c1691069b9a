"""
Pydantic schemas for API request/response serialization.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ═══════════════════════════════════════════════════════════════════
# Layer
# ═══════════════════════════════════════════════════════════════════
class LayerDescriptor(BaseModel):
    """A feature-service layer as known to the map view."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description='Namespaced layer identifier, e.g. "ns:layer"')
    default_projection: str | None = Field(
        default=None,
        description="Native reference-system code advertised by the service",
    )
    title: str | None = None

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Layer id must not be empty")
        return v


# ═══════════════════════════════════════════════════════════════════
# Export request
# ═══════════════════════════════════════════════════════════════════
class ExportFormat(str, Enum):
    GEOJSON = "geojson"
    CSV = "csv"

    @property
    def extension(self) -> str:
        return "csv" if self is ExportFormat.CSV else "geojson"


class ExportRequest(BaseModel):
    """One user-triggered export; built fresh per request."""

    service_url: str = Field(description="WFS endpoint URL")
    layer: LayerDescriptor
    format: ExportFormat = ExportFormat.GEOJSON
    max_features: int = Field(
        default=0,
        description="Feature cap used when not downloading everything (0 = all)",
    )
    total_feature_count: int | None = Field(
        default=None,
        description="Features the service reports for the layer, if known",
    )
    loaded_feature_count: int = Field(
        default=0,
        description="Features already loaded in the map view",
    )
    download_all: bool = True
    projection_issue: bool = Field(
        default=False,
        description="Standard-projection fetches are unreliable; retrieve natively",
    )
    keep_native_projection: bool = Field(
        default=False,
        description="Keep native coordinates instead of reprojecting GeoJSON",
    )
    source_projection: str = Field(
        default="EPSG:4326",
        description="Reference system of the fetched coordinates",
    )

    @field_validator("max_features", "loaded_feature_count")
    @classmethod
    def non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Feature counts must be >= 0")
        return v


# ═══════════════════════════════════════════════════════════════════
# Lane state
# ═══════════════════════════════════════════════════════════════════
class ExportStateOut(BaseModel):
    exporting_geojson: bool = False
    exporting_tabular: bool = False


# ═══════════════════════════════════════════════════════════════════
# Download options (which checkboxes the view should offer)
# ═══════════════════════════════════════════════════════════════════
class DownloadOptionsRequest(BaseModel):
    max_features: int = 0
    total_feature_count: int | None = None
    loaded_feature_count: int = 0
    source_projection: str = "EPSG:4326"


class DownloadOptions(BaseModel):
    show_download_all: bool
    show_native_projection: bool
    native_projection_label: str | None = None
    total_feature_count: int | None = None
