"""
Reference System Codes
======================
Normalization of coordinate reference system identifiers.

Feature services spell the same CRS in many ways::

    EPSG:4326
    urn:ogc:def:crs:EPSG::4326
    http://www.opengis.net/def/crs/EPSG/0/4326
    CRS:84

Two codes are considered equal iff their normalized forms match.  The
normalized form is ``EPSG:<n>`` whenever an EPSG number can be recovered,
otherwise the trimmed, upper-cased input.
"""

from __future__ import annotations

import re

# Codes that denote the same system as the key once normalized.
_ALIASES: dict[str, str] = {
    "CRS:84": "EPSG:4326",
    "CRS84": "EPSG:4326",
    "OGC:CRS84": "EPSG:4326",
    "URN:OGC:DEF:CRS:OGC:1.3:CRS84": "EPSG:4326",
    "URN:OGC:DEF:CRS:OGC::CRS84": "EPSG:4326",
    "HTTP://WWW.OPENGIS.NET/DEF/CRS/OGC/1.3/CRS84": "EPSG:4326",
    "WGS84": "EPSG:4326",
    "WGS 84": "EPSG:4326",
    "EPSG:900913": "EPSG:3857",
    "EPSG:102100": "EPSG:3857",
    "EPSG:102113": "EPSG:3857",
}

_EPSG_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^EPSG:+(\d+)$"),
    re.compile(r"^URN:(?:X-)?OGC:DEF:CRS:EPSG:(?:[\d.]*:)?(\d+)$"),
    re.compile(r"^HTTPS?://WWW\.OPENGIS\.NET/DEF/CRS/EPSG/[\d.]+/(\d+)$"),
    re.compile(r"^HTTPS?://WWW\.OPENGIS\.NET/GML/SRS/EPSG\.XML#(\d+)$"),
    re.compile(r"^(\d+)$"),
)


def normalize_projection_code(code: str | int) -> str:
    """Return the canonical form of a reference-system code."""
    text = str(code).strip().upper()
    # Collapse inner whitespace ("EPSG : 4326" → "EPSG:4326")
    text = re.sub(r"\s*:\s*", ":", text)

    for pattern in _EPSG_PATTERNS:
        m = pattern.match(text)
        if m:
            text = f"EPSG:{int(m.group(1))}"
            break

    return _ALIASES.get(text, text)


def same_projection(a: str | int, b: str | int) -> bool:
    """True when both codes name the same reference system."""
    return normalize_projection_code(a) == normalize_projection_code(b)


def projection_urn(code: str | int) -> str:
    """OGC URN for *code*, as used by the legacy GeoJSON ``crs`` member."""
    norm = normalize_projection_code(code)
    if norm.startswith("EPSG:"):
        return f"urn:ogc:def:crs:EPSG::{norm.split(':', 1)[1]}"
    return norm
