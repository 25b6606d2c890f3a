"""Google Earth Engine adapter (earthengine-api).

Concrete ``ImageryProvider`` serving Sentinel-2 discovery and export
from one Earth Engine session bound to ``ProviderConfig.project_id``.

- ``search`` filters ``COPERNICUS/S2_SR_HARMONIZED`` by ROI, date range and
  scene cloud cover, sorted by cloud cover and capped at
  ``SEARCH_RESULT_LIMIT`` scenes.  Scene/ROI coverage is computed locally
  with shapely.
- ``generate_artifact_reference`` returns a ``getDownloadURL`` reference
  for one transformed scene clipped to the ROI.
- ``submit_batch`` queues ``ee.batch.Export.image`` tasks (Drive, asset or
  Cloud Storage) and returns their task ids.

The SDK is synchronous, so every call runs in a worker thread via
``asyncio.to_thread``; callers still await each call in turn.

Provider extras (``ProviderConfig.extra_params``):
    drive_folder  Drive folder for ``DRIVE`` exports (default ``"SentinelExports"``)
    asset_root    Asset folder for ``ASSET`` exports (default ``projects/<project>/assets``)
    bucket        Cloud Storage bucket for ``BUCKET`` exports (required)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Any

import ee
from shapely.geometry import Polygon, shape

from sentinel_pipeline.activities.band_transforms import (
    BandTransform,
    TransformKind,
    get_transform,
    select_transform,
)
from sentinel_pipeline.core.constants import (
    CLOUD_PROPERTY,
    SEARCH_RESULT_LIMIT,
    SENTINEL2_COLLECTION,
    Destination,
)
from sentinel_pipeline.models.imagery import ImageryItem
from sentinel_pipeline.models.results import ArtifactReference
from sentinel_pipeline.providers.base import (
    ImageryProvider,
    ProviderAuthError,
    ProviderExportError,
    ProviderSearchError,
)
from sentinel_pipeline.utils.artifact_names import artifact_filename

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sentinel_pipeline.models.imagery import RegionOfInterest, SearchFilters
    from sentinel_pipeline.models.results import ExportSpecification
    from sentinel_pipeline.providers.base import ProviderConfig

logger = logging.getLogger(__name__)

# Sentinel-2 L2A archive start; used when the search has no start date.
_ARCHIVE_START = date(2017, 3, 28)

_DEFAULT_DRIVE_FOLDER = "SentinelExports"
_MAX_PIXELS = 1e13

_THUMBNAIL_PARAMS: dict[str, Any] = {
    "bands": ["B4", "B3", "B2"],
    "min": 0,
    "max": 3000,
    "dimensions": 512,
    "format": "jpg",
}


class EarthEngineAdapter(ImageryProvider):
    """Earth Engine discovery and export adapter.

    ``ee.Initialize`` runs lazily on the first call and once per adapter.
    """

    def __init__(self, config: ProviderConfig) -> None:
        super().__init__(config)
        self._initialized = False

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        try:
            if self.config.project_id:
                ee.Initialize(project=self.config.project_id)
            else:
                ee.Initialize()
        except Exception as exc:
            msg = f"Earth Engine initialisation failed (project={self.config.project_id!r}): {exc}"
            raise ProviderAuthError(provider=self.name, message=msg) from exc
        self._initialized = True
        logger.info("Earth Engine session ready | project=%s", self.config.project_id or "<default>")

    # ------------------------------------------------------------------
    # search
    # ------------------------------------------------------------------

    async def search(
        self,
        roi: RegionOfInterest,
        filters: SearchFilters,
    ) -> list[ImageryItem]:
        return await asyncio.to_thread(self._search_sync, roi, filters)

    def _search_sync(self, roi: RegionOfInterest, filters: SearchFilters) -> list[ImageryItem]:
        self._ensure_initialized()
        start, end = _date_window(filters)

        try:
            geometry = ee.Geometry.Polygon([list(map(list, roi.exterior))])
            collection = (
                ee.ImageCollection(SENTINEL2_COLLECTION)
                .filterBounds(geometry)
                .filterDate(start, end)
                .filter(ee.Filter.lt(CLOUD_PROPERTY, filters.max_cloud_cover_pct))
                .sort(CLOUD_PROPERTY)
                .limit(SEARCH_RESULT_LIMIT)
            )
            info = collection.getInfo() or {}
        except Exception as exc:
            msg = f"Sentinel-2 search failed: {exc}"
            raise ProviderSearchError(provider=self.name, message=msg, retryable=True) from exc

        roi_polygon = Polygon(roi.exterior)
        items: list[ImageryItem] = []
        for feature in info.get("features", []):
            coverage = _coverage_pct(feature, roi_polygon)
            if coverage < filters.min_coverage_pct:
                logger.debug(
                    "Scene below coverage threshold | id=%s | coverage=%.1f | min=%.1f",
                    feature.get("id"),
                    coverage,
                    filters.min_coverage_pct,
                )
                continue
            items.append(self._feature_to_item(feature, coverage))

        logger.info(
            "Sentinel-2 search complete | scenes=%d | window=%s..%s | max_cloud=%.1f",
            len(items),
            start,
            end,
            filters.max_cloud_cover_pct,
        )
        return items

    def _feature_to_item(self, feature: dict[str, Any], coverage: float) -> ImageryItem:
        props = feature.get("properties", {})
        item_id = str(feature["id"])
        sensed = datetime.fromtimestamp(props["system:time_start"] / 1000, tz=UTC)

        ring = (feature.get("geometry") or {}).get("coordinates") or [[]]
        # MultiPolygon footprints nest one level deeper.
        if ring and ring[0] and isinstance(ring[0][0][0], list):
            ring = ring[0]

        try:
            thumbnail = ee.Image(item_id).getThumbURL(_THUMBNAIL_PARAMS)
        except Exception:
            logger.warning("Thumbnail unavailable | id=%s", item_id, exc_info=True)
            thumbnail = ""

        return ImageryItem(
            item_id=item_id,
            acquisition_date=sensed.date(),
            cloud_cover_pct=round(float(props.get(CLOUD_PROPERTY, 0.0)), 2),
            bounds=[(float(c[0]), float(c[1])) for c in ring[0]] if ring and ring[0] else [],
            thumbnail_url=thumbnail,
            tile_id=str(props.get("MGRS_TILE") or "N/A"),
            metadata={
                "platform": str(props.get("SPACECRAFT_NAME") or "Sentinel-2"),
                "productId": str(props.get("PRODUCT_ID") or ""),
                "sensedAt": sensed.isoformat(),
                "coveragePct": f"{coverage:.1f}",
            },
        )

    # ------------------------------------------------------------------
    # Single-artifact reference
    # ------------------------------------------------------------------

    async def generate_artifact_reference(
        self,
        item_id: str,
        kernel_id: str,
        roi: RegionOfInterest,
        name_prefix: str,
    ) -> ArtifactReference:
        return await asyncio.to_thread(
            self._reference_sync, item_id, select_transform(kernel_id), roi, name_prefix
        )

    def _reference_sync(
        self,
        item_id: str,
        transform: BandTransform,
        roi: RegionOfInterest,
        name_prefix: str,
    ) -> ArtifactReference:
        self._ensure_initialized()
        try:
            geometry = ee.Geometry.Polygon([list(map(list, roi.exterior))])
            image = apply_transform(ee.Image(item_id), transform).clip(geometry)
            url = image.getDownloadURL(
                {
                    "name": name_prefix,
                    "region": geometry,
                    "scale": self.config.scale_m,
                    "format": "GEO_TIFF",
                    "filePerBand": False,
                }
            )
        except Exception as exc:
            msg = f"Download reference failed for {item_id}: {exc}"
            raise ProviderExportError(provider=self.name, message=msg, retryable=True) from exc

        logger.debug("Artifact reference ready | id=%s | transform=%s", item_id, transform.key)
        return ArtifactReference(url=url, filename=artifact_filename(name_prefix))

    # ------------------------------------------------------------------
    # Batch export queue
    # ------------------------------------------------------------------

    async def submit_batch(self, specs: Sequence[ExportSpecification]) -> list[str]:
        task_ids: list[str] = []
        for spec in specs:
            task_ids.append(await asyncio.to_thread(self._submit_sync, spec))
        return task_ids

    def _submit_sync(self, spec: ExportSpecification) -> str:
        self._ensure_initialized()
        try:
            geometry = ee.Geometry.Polygon([list(map(list, spec.region.exterior))])
            image = apply_transform(ee.Image(spec.item_id), get_transform(spec.transform))
            task = self._build_export_task(spec, image.clip(geometry), geometry)
            task.start()
        except ProviderExportError:
            raise
        except Exception as exc:
            msg = f"Export submission failed for {spec.item_id}: {exc}"
            raise ProviderExportError(provider=self.name, message=msg, retryable=True) from exc

        logger.info(
            "Export task queued | id=%s | task=%s | destination=%s | name=%s",
            spec.item_id,
            task.id,
            spec.destination.value,
            spec.name_prefix,
        )
        return str(task.id)

    def _build_export_task(self, spec: ExportSpecification, image: Any, geometry: Any) -> Any:
        common: dict[str, Any] = {
            "image": image,
            "description": spec.name_prefix,
            "region": geometry,
            "scale": spec.scale_m,
            "maxPixels": _MAX_PIXELS,
        }
        extra = self.config.extra_params

        if spec.destination is Destination.DRIVE:
            return ee.batch.Export.image.toDrive(
                folder=extra.get("drive_folder", _DEFAULT_DRIVE_FOLDER),
                fileNamePrefix=spec.name_prefix,
                fileFormat="GeoTIFF",
                **common,
            )
        if spec.destination is Destination.ASSET:
            root = extra.get("asset_root") or f"projects/{self.config.project_id}/assets"
            return ee.batch.Export.image.toAsset(
                assetId=f"{root.rstrip('/')}/{spec.name_prefix}",
                **common,
            )
        if spec.destination is Destination.BUCKET:
            bucket = extra.get("bucket", "")
            if not bucket:
                msg = "BUCKET export requested but no 'bucket' is configured"
                raise ProviderExportError(provider=self.name, message=msg)
            return ee.batch.Export.image.toCloudStorage(
                bucket=bucket,
                fileNamePrefix=spec.name_prefix,
                fileFormat="GeoTIFF",
                **common,
            )
        msg = f"Destination {spec.destination.value} is not a remote export queue"
        raise ProviderExportError(provider=self.name, message=msg)


# ---------------------------------------------------------------------------
# Helpers (module-private unless noted)
# ---------------------------------------------------------------------------


def apply_transform(image: Any, transform: BandTransform) -> Any:
    """Apply *transform* to an ``ee.Image`` and return the derived image."""
    if transform.kind is TransformKind.NORMALIZED_DIFFERENCE:
        return image.normalizedDifference(list(transform.bands)).rename(transform.label)
    if transform.kind is TransformKind.EXPRESSION:
        # Surface reflectance is stored as DN * 10000.
        variables = {b.lower(): image.select(b).multiply(0.0001) for b in transform.bands}
        return image.expression(transform.expression, variables).rename(transform.label)
    return image.select(list(transform.bands))


def _date_window(filters: SearchFilters) -> tuple[str, str]:
    """Return ``(start, end)`` ISO strings; ``end`` is exclusive."""
    start = filters.date_start or _ARCHIVE_START
    end = (filters.date_end or datetime.now(UTC).date()) + timedelta(days=1)
    return start.isoformat(), end.isoformat()


def _coverage_pct(feature: dict[str, Any], roi_polygon: Polygon) -> float:
    """Return the share of *roi_polygon* covered by the scene footprint (0-100)."""
    geometry = feature.get("geometry")
    if not geometry or roi_polygon.area == 0:
        return 0.0
    try:
        footprint = shape(geometry)
    except (ValueError, TypeError, AttributeError):
        return 0.0
    if not footprint.is_valid:
        footprint = footprint.buffer(0)
    return round(footprint.intersection(roi_polygon).area / roi_polygon.area * 100, 2)
