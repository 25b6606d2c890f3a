"""Typed models for imagery discovery and export.

Defines the data structures exchanged between the orchestrator, the
export dispatcher and the imagery provider adapters:

- ``RegionOfInterest``: Closed polygon bounding the search/processing area
- ``SearchFilters``: Discovery criteria (cloud cover, coverage, date range)
- ``ImageryItem``: One discovered Sentinel-2 scene

Design notes:
- Filters and regions are frozen dataclasses; ``ImageryItem`` is mutable
  only in ``local_path``, which the dispatcher sets after a successful
  local export.
- Explicit units on every numeric field.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sentinel_pipeline.core.exceptions import PipelineError

# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ModelValidationError(ValueError, PipelineError):
    """Raised when a domain model is constructed with invalid field values.

    Attributes:
        model: Name of the model class that failed validation.
        field_name: The field that violated the invariant.
        value: The invalid value.
    """

    default_stage = "model_validation"
    default_code = "MODEL_VALIDATION_FAILED"

    def __init__(self, model: str, field_name: str, value: object, message: str) -> None:
        self.model = model
        self.field_name = field_name
        self.value = value
        formatted = f"{model}.{field_name}={value!r}: {message}"
        PipelineError.__init__(self, formatted)


# ---------------------------------------------------------------------------
# Region of interest
# ---------------------------------------------------------------------------

Coordinate = tuple[float, float]


@dataclass(frozen=True, slots=True)
class RegionOfInterest:
    """A closed WGS 84 polygon.

    Attributes:
        exterior: Exterior ring as ``(lon, lat)`` pairs; first and last
            coordinates are equal.
    """

    exterior: tuple[Coordinate, ...]

    def __post_init__(self) -> None:
        if len(self.exterior) < 4:
            raise ModelValidationError(
                "RegionOfInterest",
                "exterior",
                len(self.exterior),
                "a closed ring needs at least 4 coordinates",
            )
        if self.exterior[0] != self.exterior[-1]:
            raise ModelValidationError(
                "RegionOfInterest",
                "exterior",
                self.exterior[-1],
                f"ring is not closed (first={self.exterior[0]})",
            )
        for lon, lat in self.exterior:
            _check_range("RegionOfInterest", "lon", lon, -180, 180)
            _check_range("RegionOfInterest", "lat", lat, -90, 90)

    @classmethod
    def from_coordinates(cls, coords: list[list[float]] | list[Coordinate]) -> RegionOfInterest:
        """Build a region from a coordinate ring, closing it if needed."""
        ring = [(float(c[0]), float(c[1])) for c in coords]
        if ring and ring[0] != ring[-1]:
            ring.append(ring[0])
        return cls(exterior=tuple(ring))

    @classmethod
    def from_geojson(cls, data: dict[str, Any]) -> RegionOfInterest:
        """Build a region from a GeoJSON Feature or Polygon geometry.

        Accepts ``{"type": "Feature", "geometry": {...}}`` as well as a bare
        geometry.  Only the exterior ring of a Polygon is used.
        """
        geometry = data.get("geometry", data)
        if not isinstance(geometry, dict) or geometry.get("type") != "Polygon":
            raise ModelValidationError(
                "RegionOfInterest",
                "geometry",
                geometry.get("type") if isinstance(geometry, dict) else geometry,
                "must be a GeoJSON Polygon",
            )
        rings = geometry.get("coordinates") or []
        if not rings:
            raise ModelValidationError("RegionOfInterest", "coordinates", rings, "must not be empty")
        # Tolerate a bare ring without the outer nesting level.
        exterior = rings if not isinstance(rings[0][0], list | tuple) else rings[0]
        return cls.from_coordinates(exterior)

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        """Return ``(min_lon, min_lat, max_lon, max_lat)``."""
        lons = [c[0] for c in self.exterior]
        lats = [c[1] for c in self.exterior]
        return (min(lons), min(lats), max(lons), max(lats))

    def to_geojson(self) -> dict[str, Any]:
        return {
            "type": "Polygon",
            "coordinates": [[list(c) for c in self.exterior]],
        }


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SearchFilters:
    """Criteria for a Sentinel-2 archive search.

    Attributes:
        max_cloud_cover_pct: Maximum acceptable scene cloud cover (0-100).
        min_coverage_pct: Minimum share of the ROI a scene must cover (0-100).
        date_start: Earliest acquisition date (inclusive).
        date_end: Latest acquisition date (inclusive).
    """

    max_cloud_cover_pct: float = 30.0
    min_coverage_pct: float = 0.0
    date_start: date | None = None
    date_end: date | None = None

    def __post_init__(self) -> None:
        _check_range("SearchFilters", "max_cloud_cover_pct", self.max_cloud_cover_pct, 0, 100)
        _check_range("SearchFilters", "min_coverage_pct", self.min_coverage_pct, 0, 100)
        if (
            self.date_start is not None
            and self.date_end is not None
            and self.date_start > self.date_end
        ):
            raise ModelValidationError(
                "SearchFilters",
                "date_start",
                self.date_start,
                f"must be <= date_end ({self.date_end})",
            )

    @property
    def date_range_label(self) -> str:
        start = self.date_start.isoformat() if self.date_start else "*"
        end = self.date_end.isoformat() if self.date_end else "*"
        return f"{start} to {end}"


# ---------------------------------------------------------------------------
# Imagery item
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ImageryItem:
    """A single discovered scene.

    Attributes:
        item_id: Provider asset id (e.g. ``COPERNICUS/S2_SR_HARMONIZED/2024...``).
        acquisition_date: Date the scene was sensed.
        cloud_cover_pct: Scene cloud cover percentage (0-100).
        bounds: Scene footprint as ``(lon, lat)`` pairs.
        thumbnail_url: Preview image reference.
        tile_id: MGRS tile identifier, ``"N/A"`` when unknown.
        metadata: Provider-specific extras (platform, product id).
        local_path: Local artifact path, set only after a successful
            local export of this item.
    """

    item_id: str
    acquisition_date: date
    cloud_cover_pct: float = 0.0
    bounds: list[Coordinate] = field(default_factory=list)
    thumbnail_url: str = ""
    tile_id: str = "N/A"
    metadata: dict[str, str] = field(default_factory=dict)
    local_path: str | None = None

    def __post_init__(self) -> None:
        _check_non_empty("ImageryItem", "item_id", self.item_id)
        _check_range("ImageryItem", "cloud_cover_pct", self.cloud_cover_pct, 0, 100)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.item_id,
            "date": self.acquisition_date.isoformat(),
            "cloudCover": self.cloud_cover_pct,
            "bounds": [list(c) for c in self.bounds],
            "thumbnail": self.thumbnail_url,
            "tileId": self.tile_id,
            "metadata": dict(self.metadata),
            "localPath": self.local_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImageryItem:
        """Deserialise an item dict (inverse of ``to_dict``).

        Raises:
            KeyError: If ``id`` or ``date`` is missing.
            ValueError: If the date cannot be parsed.
        """
        return cls(
            item_id=str(data["id"]),
            acquisition_date=parse_date(data["date"]),
            cloud_cover_pct=float(data.get("cloudCover", 0.0)),
            bounds=[(float(c[0]), float(c[1])) for c in data.get("bounds", [])],
            thumbnail_url=str(data.get("thumbnail", "")),
            tile_id=str(data.get("tileId", "N/A")),
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
            local_path=data.get("localPath") or None,
        )


def parse_date(value: str | date | datetime) -> date:
    """Coerce an ISO date/datetime string or object into a ``date``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if "T" in text:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    return date.fromisoformat(text)


# ---------------------------------------------------------------------------
# Validation helpers (module-private)
# ---------------------------------------------------------------------------


def _check_range(model: str, field_name: str, value: float, lo: float, hi: float) -> None:
    """Raise `ModelValidationError` if *value* falls outside [lo, hi]."""
    if value < lo or value > hi:
        raise ModelValidationError(model, field_name, value, f"must be between {lo} and {hi}")


def _check_non_empty(model: str, field_name: str, value: str) -> None:
    """Raise `ModelValidationError` if *value* is empty or blank."""
    if not value or not value.strip():
        raise ModelValidationError(model, field_name, value, "must not be empty")
