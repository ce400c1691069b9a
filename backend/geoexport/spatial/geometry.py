"""
Geometry & Feature Model
========================
A closed tagged variant over the six GeoJSON geometry kinds, plus the
``Feature`` / ``FeatureCollection`` containers produced by parsing a
feature-service payload.

Each variant stores its GeoJSON ``coordinates`` verbatim.  The nesting
depth of a variant is the number of array levels above a single
position::

    Point            depth 0   [x, y]
    LineString       depth 1   [[x, y], ...]
    MultiPoint       depth 1   [[x, y], ...]
    Polygon          depth 2   [[[x, y], ...], ...]
    MultiLineString  depth 2   [[[x, y], ...], ...]
    MultiPolygon     depth 3   [[[[x, y], ...], ...], ...]

Structural validation of the coordinates is the job of the reprojector;
parsing only guarantees the tag is known and a coordinate array exists.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterator, Mapping, Union

from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

from geoexport.errors import GeometryError, ParseError


# ── Geometry variants ────────────────────────────────────────────
@dataclass(frozen=True, slots=True)
class _GeometryBase:
    """Shared behaviour of all geometry variants."""

    coordinates: Any

    kind: ClassVar[str] = ""
    depth: ClassVar[int] = 0

    def to_geojson(self) -> dict[str, Any]:
        return {"type": self.kind, "coordinates": self.coordinates}

    def to_shapely(self) -> BaseGeometry:
        """Return the equivalent Shapely geometry."""
        try:
            return shape(self.to_geojson())
        except Exception as e:
            raise GeometryError(
                f"Invalid {self.kind} geometry", details=str(e)
            ) from e

    def positions(self) -> Iterator[Any]:
        """Yield every position in document order (no validation)."""

        def walk(node: Any, level: int) -> Iterator[Any]:
            if level == 0:
                yield node
                return
            for child in node:
                yield from walk(child, level - 1)

        yield from walk(self.coordinates, self.depth)


class Point(_GeometryBase):
    kind = "Point"
    depth = 0


class LineString(_GeometryBase):
    kind = "LineString"
    depth = 1


class MultiPoint(_GeometryBase):
    kind = "MultiPoint"
    depth = 1


class Polygon(_GeometryBase):
    kind = "Polygon"
    depth = 2


class MultiLineString(_GeometryBase):
    kind = "MultiLineString"
    depth = 2


class MultiPolygon(_GeometryBase):
    kind = "MultiPolygon"
    depth = 3


Geometry = Union[Point, LineString, MultiPoint, Polygon, MultiLineString, MultiPolygon]

GEOMETRY_TYPES: dict[str, type[_GeometryBase]] = {
    cls.kind: cls
    for cls in (Point, LineString, MultiPoint, Polygon, MultiLineString, MultiPolygon)
}


# ── Features ─────────────────────────────────────────────────────
@dataclass(frozen=True, slots=True)
class Feature:
    """A single feature: optional identifier, optional geometry, flat attributes."""

    id: str | int | None
    geometry: Geometry | None
    properties: dict[str, Any] = field(default_factory=dict)

    def to_geojson(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"type": "Feature"}
        if self.id is not None:
            doc["id"] = self.id
        doc["geometry"] = self.geometry.to_geojson() if self.geometry is not None else None
        doc["properties"] = self.properties
        return doc


@dataclass(frozen=True, slots=True)
class FeatureCollection:
    """
    An ordered collection of features.

    ``crs`` is the reference system declared by the payload itself
    (legacy GeoJSON ``crs`` member), ``None`` when the payload is silent.
    """

    features: tuple[Feature, ...] = ()
    name: str | None = None
    bbox: tuple[float, ...] | None = None
    crs: str | None = None

    def __len__(self) -> int:
        return len(self.features)

    def compute_bbox(self) -> tuple[float, float, float, float] | None:
        """Bounding box over all non-null geometries, via Shapely."""
        bounds = [
            f.geometry.to_shapely().bounds
            for f in self.features
            if f.geometry is not None
        ]
        bounds = [b for b in bounds if b and not any(math.isnan(v) for v in b)]
        if not bounds:
            return None
        return (
            min(b[0] for b in bounds),
            min(b[1] for b in bounds),
            max(b[2] for b in bounds),
            max(b[3] for b in bounds),
        )


# ── Parsing ──────────────────────────────────────────────────────
def geometry_from_mapping(obj: Any) -> Geometry | None:
    """Build a geometry variant from a GeoJSON geometry object."""
    if obj is None:
        return None
    if not isinstance(obj, Mapping):
        raise ParseError(
            "Feature geometry is not an object",
            details=f"got {type(obj).__name__}",
        )
    kind = obj.get("type")
    cls = GEOMETRY_TYPES.get(kind)
    if cls is None:
        raise ParseError("Unsupported geometry type", details=repr(kind))
    coordinates = obj.get("coordinates")
    if not isinstance(coordinates, list):
        raise ParseError(f"{kind} geometry has no coordinate array")
    return cls(coordinates)


def _declared_crs(payload: Mapping[str, Any]) -> str | None:
    crs = payload.get("crs")
    if not isinstance(crs, Mapping):
        return None
    props = crs.get("properties")
    if isinstance(props, Mapping) and isinstance(props.get("name"), str):
        return props["name"]
    return None


def _bbox(value: Any) -> tuple[float, ...] | None:
    if value is None:
        return None
    if not isinstance(value, list) or len(value) not in (4, 6) or not all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in value
    ):
        raise ParseError("Collection bbox is malformed", details=repr(value))
    return tuple(float(v) for v in value)


def parse_feature_collection(payload: str | bytes | Mapping[str, Any]) -> FeatureCollection:
    """
    Deserialize a feature-service payload into a ``FeatureCollection``.

    Raises
    ------
    ParseError
        When the payload is not JSON or not shaped like a GeoJSON
        FeatureCollection.
    """
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise ParseError("Feature data is not valid JSON", details=str(e)) from e
    else:
        data = payload

    if not isinstance(data, Mapping):
        raise ParseError("Feature data is not a JSON object")
    if data.get("type", "FeatureCollection") != "FeatureCollection":
        raise ParseError(
            "Feature data is not a FeatureCollection",
            details=f"type={data.get('type')!r}",
        )
    raw_features = data.get("features")
    if not isinstance(raw_features, list):
        raise ParseError("Feature data has no feature list")

    features = []
    for index, raw in enumerate(raw_features):
        if not isinstance(raw, Mapping):
            raise ParseError(f"Feature #{index} is not an object")
        props = raw.get("properties")
        if props is None:
            props = {}
        elif not isinstance(props, Mapping):
            raise ParseError(f"Feature #{index} has non-object properties")
        fid = raw.get("id")
        features.append(
            Feature(
                id=fid if isinstance(fid, (str, int)) and not isinstance(fid, bool) else None,
                geometry=geometry_from_mapping(raw.get("geometry")),
                properties=dict(props),
            )
        )

    name = data.get("name")
    return FeatureCollection(
        features=tuple(features),
        name=name if isinstance(name, str) else None,
        bbox=_bbox(data.get("bbox")),
        crs=_declared_crs(data),
    )
