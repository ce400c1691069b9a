"""
Geometry Reprojector
====================
Structural coordinate transform over a geometry tree.

The reprojector walks every position of a geometry exactly once, in
document order, and replaces ``[x, y, ...]`` by ``[x', y', ...]``.
Anything after the first two ordinates (z / m) is carried through
untouched.  The numerical transform itself is delegated to
``pyproj.Transformer`` (``always_xy=True`` so every code is read as
easting/longitude first, matching GeoJSON axis order).

When source and target normalize to the same code the input geometry is
returned as-is, so an identity reprojection never introduces drift.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from functools import lru_cache
from typing import Any, Callable

from pyproj import Transformer
from pyproj.exceptions import CRSError, ProjError

from geoexport.errors import GeometryError
from geoexport.spatial.crs import normalize_projection_code
from geoexport.spatial.geometry import FeatureCollection, Geometry

logger = logging.getLogger(__name__)

CoordTransform = Callable[[float, float], tuple[float, float]]


# ── Transform primitive ──────────────────────────────────────────
@lru_cache(maxsize=64)
def _pyproj_transform(source: str, target: str) -> CoordTransform:
    try:
        transformer = Transformer.from_crs(source, target, always_xy=True)
    except CRSError as e:
        raise GeometryError(
            f"Cannot transform from {source} to {target}", details=str(e)
        ) from e
    return transformer.transform


def get_transform(source_code: str, target_code: str) -> CoordTransform:
    """Return a cached ``(x, y) -> (x', y')`` callable for a code pair."""
    return _pyproj_transform(
        normalize_projection_code(source_code),
        normalize_projection_code(target_code),
    )


# ── Tree walk ────────────────────────────────────────────────────
def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _reproject_position(pos: Any, fn: CoordTransform, kind: str) -> list:
    if not isinstance(pos, (list, tuple)) or len(pos) < 2:
        raise GeometryError(
            f"Malformed {kind} geometry", details=f"expected a position, got {pos!r}"
        )
    x, y = pos[0], pos[1]
    if not (_is_number(x) and _is_number(y)):
        raise GeometryError(
            f"Malformed {kind} geometry", details=f"non-numeric coordinate {pos!r}"
        )
    try:
        nx, ny = fn(x, y)
    except ProjError as e:
        raise GeometryError(f"Failed to transform {kind} coordinate", details=str(e)) from e
    if not (math.isfinite(nx) and math.isfinite(ny)):
        raise GeometryError(
            f"Failed to transform {kind} coordinate",
            details=f"{pos!r} has no finite image",
        )
    return [nx, ny, *pos[2:]]


def _reproject_node(node: Any, depth: int, fn: CoordTransform, kind: str) -> list:
    if depth == 0:
        return _reproject_position(node, fn, kind)
    if not isinstance(node, (list, tuple)):
        raise GeometryError(
            f"Malformed {kind} geometry", details=f"expected an array, got {node!r}"
        )
    return [_reproject_node(child, depth - 1, fn, kind) for child in node]


def reproject_geometry(
    geometry: Geometry,
    source_code: str,
    target_code: str,
    transform: CoordTransform | None = None,
) -> Geometry:
    """
    Reproject *geometry* from ``source_code`` to ``target_code``.

    Parameters
    ----------
    geometry : Geometry
        Any of the six geometry variants.
    source_code, target_code : str
        Reference-system codes, in any spelling ``normalize_projection_code``
        understands.
    transform : callable, optional
        Override for the coordinate primitive (defaults to pyproj).

    Returns
    -------
    Geometry
        A new geometry of the same variant, or ``geometry`` itself when the
        codes are equal.

    Raises
    ------
    GeometryError
        On wrong nesting, non-numeric coordinates, unknown codes, or a
        transform without a finite result.
    """
    if normalize_projection_code(source_code) == normalize_projection_code(target_code):
        return geometry
    fn = transform or get_transform(source_code, target_code)
    coords = _reproject_node(geometry.coordinates, geometry.depth, fn, geometry.kind)
    return type(geometry)(coords)


def reproject_collection(
    collection: FeatureCollection,
    source_code: str,
    target_code: str,
    transform: CoordTransform | None = None,
) -> FeatureCollection:
    """
    Reproject every feature geometry of *collection*.

    Null geometries pass through.  A declared bbox is recomputed in the
    target system; the result declares ``target_code`` as its CRS.
    """
    if normalize_projection_code(source_code) == normalize_projection_code(target_code):
        return collection

    fn = transform or get_transform(source_code, target_code)
    features = tuple(
        f if f.geometry is None
        else replace(f, geometry=reproject_geometry(f.geometry, source_code, target_code, fn))
        for f in collection.features
    )
    logger.debug(
        "Reprojected %d features %s → %s",
        len(features), source_code, target_code,
    )

    out = replace(
        collection,
        features=features,
        crs=normalize_projection_code(target_code),
    )
    if collection.bbox is not None:
        out = replace(out, bbox=out.compute_bbox())
    return out
