"""Shared helper functions used across the composition root and activities."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sentinel_pipeline.providers.base import ProviderConfig

if TYPE_CHECKING:
    from sentinel_pipeline.core.config import PipelineConfig


def build_provider_config(
    config: PipelineConfig,
    overrides: dict[str, Any] | None = None,
) -> ProviderConfig:
    """Build a ``ProviderConfig`` for the configured export provider.

    The export targets from ``PipelineConfig`` become provider extras
    (``bucket``, ``drive_folder``, ``asset_root``); empty values are left
    out so the adapter's own defaults apply.

    Args:
        config: Loaded pipeline configuration.
        overrides: Optional provider-specific extras, applied last.
    """
    extra = {
        key: value
        for key, value in (
            ("bucket", config.export_bucket),
            ("drive_folder", config.export_drive_folder),
            ("asset_root", config.export_asset_root),
        )
        if value
    }
    extra.update({str(k): str(v) for k, v in (overrides or {}).items()})
    return ProviderConfig(
        name=config.export_provider,
        project_id=config.gee_project_id,
        scale_m=config.export_scale_m,
        extra_params=extra,
    )


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(UTC).isoformat()
