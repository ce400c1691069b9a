"""
Artifact Serializers
====================
Turn a ``FeatureCollection`` into the text of a downloadable file.

- **to_tabular**: delimited text, one row per feature, geometry dropped.
  The column schema is the union of attribute keys in first-seen order,
  so the same collection always yields byte-identical output.

- **to_geojson**: a standard GeoJSON FeatureCollection document.

Both raise ``SerializationError`` instead of ever returning a partial
document.
"""

from __future__ import annotations

import json
import re
from typing import Any

from geoexport.errors import SerializationError
from geoexport.spatial.crs import projection_urn, same_projection
from geoexport.spatial.geometry import FeatureCollection

TABULAR_MIME_TYPE = "text/csv; charset=utf-8"
GEOJSON_MIME_TYPE = "application/json"


# ═══════════════════════════════════════════════════════════════════
# Tabular
# ═══════════════════════════════════════════════════════════════════

def tabular_columns(collection: FeatureCollection) -> list[str]:
    """Union of attribute keys across all features, in first-seen order."""
    seen: dict[str, None] = {}
    for feature in collection.features:
        for key in feature.properties:
            seen.setdefault(key, None)
    return list(seen)


def _cell_text(value: Any) -> str:
    """Natural string form of an attribute value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    # Nested structures from loosely-typed services
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), sort_keys=True)
    except (TypeError, ValueError) as e:
        raise SerializationError(
            "Attribute value cannot be written as text", details=str(e)
        ) from e


def to_tabular(collection: FeatureCollection, delimiter: str = ",") -> str:
    """
    Flatten *collection* into delimited text with a header row.

    A cell is quoted when it contains the delimiter, a double quote or a
    line break; embedded quotes are doubled.  Missing attributes are
    empty cells.
    """
    if len(delimiter) != 1 or delimiter in '"\r\n':
        raise SerializationError("Invalid delimiter", details=repr(delimiter))
    needs_quoting = re.compile(f'[{re.escape(delimiter)}"\\r\\n]')

    def quote(text: str) -> str:
        if needs_quoting.search(text):
            return '"' + text.replace('"', '""') + '"'
        return text

    columns = tabular_columns(collection)
    lines = [delimiter.join(quote(c) for c in columns)]
    for feature in collection.features:
        props = feature.properties
        lines.append(
            delimiter.join(quote(_cell_text(props.get(c))) for c in columns)
        )
    return "\n".join(lines) + "\n"


# ═══════════════════════════════════════════════════════════════════
# GeoJSON
# ═══════════════════════════════════════════════════════════════════

def to_geojson(collection: FeatureCollection, standard_code: str = "EPSG:4326") -> str:
    """
    Encode *collection* as a GeoJSON FeatureCollection.

    A legacy named ``crs`` member is written only when the collection is
    not in ``standard_code`` (RFC 7946 readers assume WGS 84 otherwise).
    """
    doc: dict[str, Any] = {"type": "FeatureCollection"}
    if collection.name:
        doc["name"] = collection.name
    if collection.crs and not same_projection(collection.crs, standard_code):
        doc["crs"] = {
            "type": "name",
            "properties": {"name": projection_urn(collection.crs)},
        }
    if collection.bbox is not None:
        doc["bbox"] = list(collection.bbox)
    doc["features"] = [f.to_geojson() for f in collection.features]

    try:
        return json.dumps(doc, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise SerializationError("Feature data cannot be encoded as GeoJSON", details=str(e)) from e
