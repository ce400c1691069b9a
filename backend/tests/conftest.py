"""
Shared fixtures for the GeoExport test suite.

This conftest provides:
- Reusable GeoJSON payload factories
- Layer / export-request factories
- An orchestrator wired to a mock feature retriever
"""
from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from geoexport.schemas.export import ExportFormat, ExportRequest, LayerDescriptor
from geoexport.services.orchestrator import ExportOrchestrator

# ---------------------------------------------------------------------------
# Sample data factories
# ---------------------------------------------------------------------------
SAMPLE_LAYER_ID = "parks:trees"
SAMPLE_NATIVE_CODE = "EPSG:25832"
SAMPLE_SERVICE_URL = "https://geo.example.org/wfs"
SAMPLE_VIEW_ID = "view-1"


def make_layer(
    *,
    id: str = SAMPLE_LAYER_ID,
    default_projection: str | None = SAMPLE_NATIVE_CODE,
    title: str | None = "Park trees",
) -> LayerDescriptor:
    return LayerDescriptor(id=id, default_projection=default_projection, title=title)


def make_feature(
    fid: Any = None,
    geometry: dict | None = None,
    **properties: Any,
) -> dict:
    """Return a GeoJSON Feature dict."""
    feature: dict[str, Any] = {
        "type": "Feature",
        "geometry": geometry,
        "properties": properties,
    }
    if fid is not None:
        feature["id"] = fid
    return feature


def point(x: float, y: float, *rest: float) -> dict:
    return {"type": "Point", "coordinates": [x, y, *rest]}


def make_payload(features: list[dict] | None = None, **extra: Any) -> dict:
    """Return a GeoJSON FeatureCollection dict."""
    if features is None:
        features = [
            make_feature("trees.1", point(10.0, 50.0), species="Oak", height=12),
            make_feature("trees.2", point(11.0, 51.0), species="Beech", height=8.5),
        ]
    return {"type": "FeatureCollection", "features": features, **extra}


def make_payload_text(features: list[dict] | None = None, **extra: Any) -> str:
    return json.dumps(make_payload(features, **extra))


def make_request(**overrides: Any) -> ExportRequest:
    data: dict[str, Any] = {
        "service_url": SAMPLE_SERVICE_URL,
        "layer": make_layer(),
        "format": ExportFormat.GEOJSON,
        "max_features": 100,
        "total_feature_count": 500,
        "loaded_feature_count": 100,
        "download_all": True,
        "projection_issue": False,
        "keep_native_projection": False,
        "source_projection": "EPSG:4326",
    }
    data.update(overrides)
    return ExportRequest(**data)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def mock_retriever() -> MagicMock:
    retriever = MagicMock()
    retriever.fetch = AsyncMock(return_value=make_payload_text())
    return retriever


@pytest.fixture()
def notify() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def orchestrator(mock_retriever, notify) -> ExportOrchestrator:
    return ExportOrchestrator(retriever=mock_retriever, notify=notify)
