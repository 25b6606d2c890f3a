"""Imagery search activity.

Validates search criteria, calls the discovery service and returns the
scenes sorted by cloud cover.  Provider failures are wrapped in
``ImagerySearchError`` so callers see a single error type whose
``retryable`` flag mirrors the provider's.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sentinel_pipeline.core.exceptions import NoRegionError, PipelineError
from sentinel_pipeline.models.imagery import SearchFilters, parse_date
from sentinel_pipeline.providers.base import ProviderError

if TYPE_CHECKING:
    from sentinel_pipeline.models.imagery import ImageryItem, RegionOfInterest
    from sentinel_pipeline.providers.base import ImageryDiscoveryService

logger = logging.getLogger(__name__)


class ImagerySearchError(PipelineError):
    """Raised when the imagery search fails."""

    default_stage = "search"
    default_code = "IMAGERY_SEARCH_FAILED"


def build_filters(filters_dict: dict[str, Any] | None) -> SearchFilters:
    """Build ``SearchFilters`` from a request dict.

    Accepted keys: ``maxCloudCover``, ``minCoverage``, ``dateStart``,
    ``dateEnd``.  Missing keys take the ``SearchFilters`` defaults.

    Raises:
        ModelValidationError: If a value is out of range.
        ValueError: If a date cannot be parsed.
    """
    if not filters_dict:
        return SearchFilters()
    start = filters_dict.get("dateStart")
    end = filters_dict.get("dateEnd")
    return SearchFilters(
        max_cloud_cover_pct=float(filters_dict.get("maxCloudCover", 30.0)),
        min_coverage_pct=float(filters_dict.get("minCoverage", 0.0)),
        date_start=parse_date(start) if start else None,
        date_end=parse_date(end) if end else None,
    )


async def search_imagery(
    discovery: ImageryDiscoveryService,
    roi: RegionOfInterest | None,
    filters: SearchFilters,
) -> list[ImageryItem]:
    """Search for scenes over *roi*.

    Returns:
        Scenes sorted by cloud cover, then acquisition date (newest first).

    Raises:
        NoRegionError: If *roi* is ``None``.
        ImagerySearchError: If the provider search fails.
    """
    if roi is None:
        raise NoRegionError("A region of interest is required to search")

    logger.info(
        "search_imagery started | bbox=%s | cloud<=%.1f | window=%s",
        roi.bbox,
        filters.max_cloud_cover_pct,
        filters.date_range_label,
    )

    try:
        items = await discovery.search(roi, filters)
    except ProviderError as exc:
        msg = f"Imagery search failed: {exc}"
        raise ImagerySearchError(msg, retryable=exc.retryable) from exc

    items.sort(key=lambda i: (i.cloud_cover_pct, -i.acquisition_date.toordinal()))
    logger.info("search_imagery completed | scenes=%d", len(items))
    return items
