"""
Feature Retriever — WFS GetFeature client
==========================================
Fetches a layer's features from a WFS endpoint as GeoJSON text.

- **Cap semantics**: ``max_feature_count == 0`` retrieves the complete
  collection regardless of size; a positive cap retrieves at most that
  many features.

- **Pagination**: requests are paged with ``count`` / ``startIndex``
  (WFS 2.0) until a short page arrives, the cap is reached, the
  service's advertised ``numberMatched`` is exhausted, or the service
  answers a new ``startIndex`` with the page it already sent.

- **All-or-nothing**: any transport error, non-success status or
  undecodable page raises ``FetchError``; partial results are never
  returned.

- **suppress_http_logging**: context manager that quiets httpx's
  per-request INFO lines while paging through large layers.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Any

import httpx

from geoexport.config import get_settings
from geoexport.errors import FetchError
from geoexport.schemas.export import LayerDescriptor

logger = logging.getLogger(__name__)
settings = get_settings()


# ═══════════════════════════════════════════════════════════════════
# Log Suppression
# ═══════════════════════════════════════════════════════════════════

@contextmanager
def suppress_http_logging():
    """
    Temporarily raise the ``httpx`` log level to WARNING so a paged
    download does not print one line per request.  Restores the
    original level on exit.
    """
    http_logger = logging.getLogger("httpx")
    original_level = http_logger.level
    http_logger.setLevel(logging.WARNING)
    try:
        yield
    finally:
        http_logger.setLevel(original_level)


# ═══════════════════════════════════════════════════════════════════
# FeatureRetriever
# ═══════════════════════════════════════════════════════════════════

class FeatureRetriever:
    """
    Async WFS client.

    Parameters
    ----------
    client : httpx.AsyncClient, optional
        Shared client (connection pooling).  When omitted a client is
        created per ``fetch`` call and closed afterwards.
    page_size : int, optional
        Features per GetFeature request (defaults to settings).
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        page_size: int | None = None,
    ) -> None:
        self._client = client
        self._owns_client = False
        self.page_size = page_size or settings.wfs_page_size

    # ── Shared client lifecycle ───────────────────────────────

    def open(self) -> None:
        """Create a pooled client owned by this retriever (idempotent)."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.wfs_timeout_s)
            self._owns_client = True

    async def aclose(self) -> None:
        """Close the pooled client if this retriever created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    # ── Request construction ──────────────────────────────────

    def build_params(
        self,
        layer_id: str,
        layer: LayerDescriptor,
        use_native_projection: bool,
        client_side_reprojection_requested: bool,
        count: int,
        start_index: int,
    ) -> dict[str, Any]:
        """Query parameters of one GetFeature page."""
        params: dict[str, Any] = {
            "service": "WFS",
            "version": settings.wfs_version,
            "request": "GetFeature",
            "typeNames": layer_id,
            "outputFormat": settings.wfs_output_format,
            "count": count,
            "startIndex": start_index,
        }
        if use_native_projection:
            if layer.default_projection:
                params["srsName"] = layer.default_projection
        elif not client_side_reprojection_requested:
            params["srsName"] = settings.standard_projection
        return params

    # ── Fetch ─────────────────────────────────────────────────

    async def fetch(
        self,
        service_url: str,
        layer_id: str,
        max_feature_count: int,
        layer: LayerDescriptor,
        use_native_projection: bool,
        client_side_reprojection_requested: bool = True,
    ) -> str:
        """
        Retrieve the layer's features and return them as GeoJSON text.

        Raises
        ------
        FetchError
            On any network failure, non-2xx response or malformed page.
        """
        if max_feature_count < 0:
            raise FetchError("Invalid feature limit", details=str(max_feature_count))

        if self._client is not None:
            return await self._fetch_all(
                self._client, service_url, layer_id, max_feature_count,
                layer, use_native_projection, client_side_reprojection_requested,
            )
        async with httpx.AsyncClient(timeout=settings.wfs_timeout_s) as client:
            return await self._fetch_all(
                client, service_url, layer_id, max_feature_count,
                layer, use_native_projection, client_side_reprojection_requested,
            )

    async def _fetch_all(
        self,
        client: httpx.AsyncClient,
        service_url: str,
        layer_id: str,
        max_feature_count: int,
        layer: LayerDescriptor,
        use_native_projection: bool,
        client_side_reprojection_requested: bool,
    ) -> str:
        unbounded = max_feature_count == 0
        features: list[Any] = []
        first_page: dict[str, Any] | None = None
        start_index = 0
        pages = 0
        previous_first: Any = None

        with suppress_http_logging():
            while True:
                remaining = None if unbounded else max_feature_count - len(features)
                count = self.page_size if remaining is None else min(self.page_size, remaining)
                params = self.build_params(
                    layer_id, layer, use_native_projection,
                    client_side_reprojection_requested, count, start_index,
                )
                page = await self._get_page(client, service_url, params)
                page_features = page["features"]
                if previous_first is not None and page_features and page_features[0] == previous_first:
                    # Service ignores startIndex and keeps sending the same page
                    logger.warning(
                        "WFS paging stalled: layer=%s repeated the page at start=%d",
                        layer_id, start_index,
                    )
                    break
                previous_first = page_features[0] if page_features else None
                pages += 1
                if first_page is None:
                    first_page = page

                features.extend(page_features)
                start_index += len(page_features)
                logger.debug(
                    "WFS page: layer=%s, start=%d, received=%d, total=%d",
                    layer_id, start_index - len(page_features),
                    len(page_features), len(features),
                )

                if len(page_features) < count or not page_features:
                    break
                if not unbounded and len(features) >= max_feature_count:
                    break
                matched = page.get("numberMatched")
                if isinstance(matched, int) and len(features) >= matched:
                    break

        if not unbounded:
            features = features[:max_feature_count]

        result = {k: v for k, v in first_page.items() if k not in (
            "features", "numberReturned", "startIndex", "links",
        )}
        result["type"] = "FeatureCollection"
        result["features"] = features
        result["numberReturned"] = len(features)
        if pages > 1:
            # Only covers the first page
            result.pop("bbox", None)

        logger.info(
            "Fetched %d features for layer=%s (cap=%d)",
            len(features), layer_id, max_feature_count,
        )
        return json.dumps(result, ensure_ascii=False)

    async def _get_page(
        self,
        client: httpx.AsyncClient,
        service_url: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            resp = await client.get(service_url, params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                "The feature service returned an error",
                details=f"HTTP {e.response.status_code} from {service_url}",
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(
                "The feature service could not be reached", details=str(e)
            ) from e

        try:
            page = resp.json()
        except ValueError as e:
            # WFS exception reports come back as XML with status 200
            raise FetchError(
                "The feature service did not return feature data",
                details=resp.text[:200],
            ) from e
        if not isinstance(page, dict) or not isinstance(page.get("features"), list):
            raise FetchError(
                "The feature service did not return a feature collection",
                details=str(page)[:200],
            )
        return page


# ── Cached factory ────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_feature_retriever() -> FeatureRetriever:
    """Process-wide retriever; its pooled client is opened by the app lifespan."""
    return FeatureRetriever()
