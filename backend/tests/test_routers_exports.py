"""
Tests for geoexport.routers.exports — export, lane-state and option endpoints.
"""
from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from geoexport.errors import FetchError, ParseError
from geoexport.routers.exports import get_view_orchestrator, router
from geoexport.schemas.export import ExportFormat
from geoexport.services.orchestrator import GENERIC_FAILURE_MESSAGE, ExportOrchestrator
from tests.conftest import SAMPLE_SERVICE_URL, SAMPLE_VIEW_ID


def _create_test_app() -> FastAPI:
    app = FastAPI()
    app.include_router(router, prefix="/api")
    return app


def _body(**overrides) -> dict:
    body = {
        "service_url": SAMPLE_SERVICE_URL,
        "layer": {"id": "parks:trees", "default_projection": "EPSG:25832"},
        "format": "geojson",
        "max_features": 100,
        "total_feature_count": 500,
        "loaded_feature_count": 100,
        "download_all": True,
    }
    body.update(overrides)
    return body


@pytest.fixture()
def app(orchestrator):
    app = _create_test_app()
    app.dependency_overrides[get_view_orchestrator] = lambda: orchestrator
    return app


@pytest.fixture()
def client(app):
    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://testserver")


# ═══════════════════════════════════════════════════════════════════
# POST /exports/{view_id}
# ═══════════════════════════════════════════════════════════════════
class TestRunExport:
    @pytest.mark.asyncio
    async def test_geojson_download(self, client, mock_retriever):
        resp = await client.post(f"/api/exports/{SAMPLE_VIEW_ID}", json=_body())
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.headers["content-disposition"] == 'attachment; filename="parks_trees_WGS84.geojson"'
        assert resp.headers["x-feature-count"] == "2"
        assert len(resp.json()["features"]) == 2
        assert mock_retriever.fetch.await_args.args[2] == 0

    @pytest.mark.asyncio
    async def test_csv_download(self, client):
        resp = await client.post(
            f"/api/exports/{SAMPLE_VIEW_ID}",
            json=_body(format="csv", projection_issue=True),
        )
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert resp.headers["content-disposition"] == 'attachment; filename="parks_trees_EPSG_25832.csv"'
        assert resp.text == "species,height\nOak,12\nBeech,8.5\n"

    @pytest.mark.asyncio
    async def test_non_ascii_layer_id(self, client):
        resp = await client.post(
            f"/api/exports/{SAMPLE_VIEW_ID}",
            json=_body(layer={"id": "ns:道路", "default_projection": "EPSG:25832"}),
        )
        assert resp.status_code == 200
        disposition = resp.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="ns____WGS84.geojson"')
        assert disposition.endswith("filename*=UTF-8''ns_%E9%81%93%E8%B7%AF_WGS84.geojson")
        assert len(resp.json()["features"]) == 2

    @pytest.mark.asyncio
    async def test_busy_lane_conflict(self, client, orchestrator, mock_retriever):
        with orchestrator._busy(ExportFormat.GEOJSON):
            resp = await client.post(f"/api/exports/{SAMPLE_VIEW_ID}", json=_body())
        assert resp.status_code == 409
        mock_retriever.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_lane_not_blocked(self, client, orchestrator):
        with orchestrator._busy(ExportFormat.GEOJSON):
            resp = await client.post(f"/api/exports/{SAMPLE_VIEW_ID}", json=_body(format="csv"))
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_service_failure(self, client, mock_retriever, notify):
        mock_retriever.fetch.side_effect = FetchError("The feature service could not be reached")
        resp = await client.post(f"/api/exports/{SAMPLE_VIEW_ID}", json=_body())
        assert resp.status_code == 502
        assert resp.json()["detail"] == "The feature service could not be reached"
        notify.assert_called_once()

    @pytest.mark.asyncio
    async def test_unparseable_data(self, client, mock_retriever):
        mock_retriever.fetch.side_effect = ParseError("Feature data is not valid JSON")
        resp = await client.post(f"/api/exports/{SAMPLE_VIEW_ID}", json=_body())
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_unexpected_failure(self, client, mock_retriever):
        mock_retriever.fetch.side_effect = RuntimeError("boom")
        resp = await client.post(f"/api/exports/{SAMPLE_VIEW_ID}", json=_body())
        assert resp.status_code == 500
        assert resp.json()["detail"] == GENERIC_FAILURE_MESSAGE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        _body(max_features=-1),
        _body(layer={"id": "  "}),
        _body(format="shapefile"),
        {"layer": {"id": "a:b"}},
    ])
    async def test_validation(self, client, body):
        resp = await client.post(f"/api/exports/{SAMPLE_VIEW_ID}", json=body)
        assert resp.status_code == 422


# ═══════════════════════════════════════════════════════════════════
# GET /exports/{view_id}/state
# ═══════════════════════════════════════════════════════════════════
class TestExportState:
    @pytest.mark.asyncio
    async def test_idle(self, client):
        resp = await client.get(f"/api/exports/{SAMPLE_VIEW_ID}/state")
        assert resp.status_code == 200
        assert resp.json() == {"exporting_geojson": False, "exporting_tabular": False}

    @pytest.mark.asyncio
    async def test_busy(self, client, orchestrator):
        with orchestrator._busy(ExportFormat.CSV):
            resp = await client.get(f"/api/exports/{SAMPLE_VIEW_ID}/state")
        assert resp.json() == {"exporting_geojson": False, "exporting_tabular": True}


# ═══════════════════════════════════════════════════════════════════
# POST /exports/options
# ═══════════════════════════════════════════════════════════════════
class TestExportOptions:
    @pytest.mark.asyncio
    async def test_all_options(self, client):
        resp = await client.post("/api/exports/options", json={
            "max_features": 100,
            "total_feature_count": 500,
            "loaded_feature_count": 100,
            "source_projection": "EPSG:25832",
        })
        assert resp.status_code == 200
        assert resp.json() == {
            "show_download_all": True,
            "show_native_projection": True,
            "native_projection_label": "EPSG:25832",
            "total_feature_count": 500,
        }

    @pytest.mark.asyncio
    async def test_defaults(self, client):
        resp = await client.post("/api/exports/options", json={})
        data = resp.json()
        assert data["show_download_all"] is False
        assert data["show_native_projection"] is False


# ═══════════════════════════════════════════════════════════════════
# Default dependency
# ═══════════════════════════════════════════════════════════════════
class TestGetViewOrchestrator:
    def test_same_view_same_orchestrator(self):
        a = get_view_orchestrator("view-x")
        assert isinstance(a, ExportOrchestrator)
        assert get_view_orchestrator("view-x") is a
