"""
Location consistency for location-bearing records.

A location carries legacy ``lat``/``lng`` fields and a GeoJSON point used by
proximity queries. GeoJSON stores ``[longitude, latitude]``; a point stored as
``[lat, lng]`` indexes the record in the wrong place and silently drops it from
distance-based listing.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

COORDINATE_TOLERANCE = 1e-6


@dataclass(frozen=True)
class GeoJSONPoint:
    coordinates: Tuple[float, ...]
    type: str = "Point"


@dataclass(frozen=True)
class GeoPoint:
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    coordinates: Optional[GeoJSONPoint] = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "GeoPoint":
        raw_point = doc.get("coordinates")
        point: Optional[GeoJSONPoint] = None
        if isinstance(raw_point, Mapping):
            raw_coords = raw_point.get("coordinates")
            coords: Tuple[float, ...] = ()
            if isinstance(raw_coords, (list, tuple)):
                coords = tuple(c for c in (_to_float(v) for v in raw_coords) if c is not None)
            point = GeoJSONPoint(coordinates=coords, type=str(raw_point.get("type") or "Point"))
        return cls(
            address=doc.get("address"),
            lat=_to_float(doc.get("lat")),
            lng=_to_float(doc.get("lng")),
            coordinates=point,
        )

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {}
        if self.address is not None:
            doc["address"] = self.address
        if self.lat is not None:
            doc["lat"] = self.lat
        if self.lng is not None:
            doc["lng"] = self.lng
        if self.coordinates is not None:
            doc["coordinates"] = {
                "type": self.coordinates.type,
                "coordinates": list(self.coordinates.coordinates),
            }
        return doc


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def normalize(loc: GeoPoint) -> GeoPoint:
    """Derive the GeoJSON point from lat/lng, longitude first. Idempotent."""
    if loc.lat is None or loc.lng is None:
        return loc
    return replace(loc, coordinates=GeoJSONPoint(coordinates=(loc.lng, loc.lat)))


def has_valid_coordinates(loc: GeoPoint) -> bool:
    point = loc.coordinates
    return point is not None and point.type == "Point" and len(point.coordinates) == 2


def is_wrong_ordered(loc: GeoPoint, tolerance: float = COORDINATE_TOLERANCE) -> bool:
    """True when the stored point equals ``[lat, lng]`` instead of ``[lng, lat]``."""
    if loc.lat is None or loc.lng is None:
        return False
    if loc.coordinates is None or len(loc.coordinates.coordinates) != 2:
        return False
    first, second = loc.coordinates.coordinates
    return abs(first - loc.lat) < tolerance and abs(second - loc.lng) < tolerance


def repair(loc: GeoPoint) -> GeoPoint:
    if not is_wrong_ordered(loc):
        return loc
    logger.debug("Repairing [lat, lng] point for %r", loc.address)
    return normalize(loc)


def normalize_document(doc: Mapping[str, Any]) -> Dict[str, Any]:
    """Apply :func:`normalize` to a stored location document, keeping unknown keys."""
    loc = GeoPoint.from_document(doc)
    normalized = normalize(loc)
    if normalized is loc:
        return dict(doc)
    out = dict(doc)
    out.update(normalized.to_document())
    return out
