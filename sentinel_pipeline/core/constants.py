"""Shared pipeline constants, kept in one place.

Collection names, destination kinds and the fixed limits used by the
registry, the history store and the export dispatcher.
"""

from __future__ import annotations

import enum

# ---------------------------------------------------------------------------
# Durable collection names
# ---------------------------------------------------------------------------

KERNEL_COLLECTION: str = "SENTINEL_WF_ALGO_LIB"
"""Named collection holding persisted user kernels."""

HISTORY_COLLECTION: str = "SENTINEL_WF_HISTORY"
"""Named collection holding workflow run snapshots."""

HISTORY_DOCUMENT_KEY: str = "runs"
"""Single document key under which the run history list is stored."""

# ---------------------------------------------------------------------------
# Limits
# ---------------------------------------------------------------------------

HISTORY_CAPACITY: int = 20
"""Maximum number of workflow snapshots retained (oldest evicted)."""

DEFAULT_METRIC_KERNEL_ID: str = "default"
"""Kernel id used for processing nodes with no linked kernel."""

ITEM_ID_SUFFIX_LENGTH: int = 8
"""Number of trailing item-id characters kept in artifact names."""

# ---------------------------------------------------------------------------
# Sentinel-2 collection
# ---------------------------------------------------------------------------

SENTINEL2_COLLECTION: str = "COPERNICUS/S2_SR_HARMONIZED"
CLOUD_PROPERTY: str = "CLOUDY_PIXEL_PERCENTAGE"
SEARCH_RESULT_LIMIT: int = 12


class Destination(enum.Enum):
    """Where a dispatched batch ends up.

    Values:
        LOCAL:  Operator's local file system (with download fallback).
        DRIVE:  Remote batch export to Google Drive.
        ASSET:  Remote batch export to an Earth Engine asset.
        BUCKET: Remote batch export to a Cloud Storage bucket.
    """

    LOCAL = "LOCAL"
    DRIVE = "DRIVE"
    ASSET = "ASSET"
    BUCKET = "BUCKET"

    @property
    def is_remote(self) -> bool:
        return self is not Destination.LOCAL
