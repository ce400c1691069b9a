"""Spatial subpackage — CRS codes, geometry model and reprojection."""

from geoexport.spatial.crs import normalize_projection_code, projection_urn, same_projection
from geoexport.spatial.geometry import (
    Feature,
    FeatureCollection,
    Geometry,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
    parse_feature_collection,
)
from geoexport.spatial.reproject import reproject_collection, reproject_geometry

__all__ = [
    "Feature",
    "FeatureCollection",
    "Geometry",
    "LineString",
    "MultiLineString",
    "MultiPoint",
    "MultiPolygon",
    "Point",
    "Polygon",
    "normalize_projection_code",
    "parse_feature_collection",
    "projection_urn",
    "reproject_collection",
    "reproject_geometry",
    "same_projection",
]
