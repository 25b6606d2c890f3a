"""Pipeline configuration loaded from environment variables.

All configuration values have sensible defaults for a single operator
running the pipeline locally.  Azure Functions app settings (or
``local.settings.json`` for local dev) are the source of truth when the
HTTP entry point is used.

Fail-fast validation:
    ``from_env()`` raises ``ConfigValidationError`` if any numeric value
    is out of its valid range or a backend name is unknown.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from sentinel_pipeline.core.exceptions import PipelineError

STORAGE_BACKENDS = frozenset({"memory", "local", "blob"})


class ConfigValidationError(PipelineError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Immutable pipeline configuration.

    Loaded once at startup and handed to the composition root.

    Attributes:
        audit_timeout_s: Upper bound on a single Audit Port call, in seconds.
        audit_endpoint: URL of the HTTP kernel auditor (empty disables auditing).
        inter_item_delay_s: Pause between per-item dispatcher calls, in seconds.
        node_settle_s: Simulated settle time of Input/Output nodes, in seconds.
        item_settle_s: Pause after each per-item metric, in seconds.
        experiment_name: Prefix used when naming exported artifacts.
        storage_backend: ``memory``, ``local`` or ``blob``.
        storage_dir: Directory for the ``local`` JSON collections.
        storage_container: Blob container for the ``blob`` backend.
        export_provider: Name of the discovery/export adapter.
        gee_project_id: Google Cloud project bound to Earth Engine calls.
        export_scale_m: Pixel scale of exported imagery, in metres.
        export_bucket: Cloud Storage bucket for ``BUCKET`` exports.
        export_drive_folder: Drive folder for ``DRIVE`` exports.
        export_asset_root: Asset folder for ``ASSET`` exports (empty uses
            the project's default asset root).
        telemetry_max_entries: Number of log entries kept in memory.
        download_timeout_s: Timeout of a single artifact byte retrieval.
    """

    audit_timeout_s: float = 30.0
    audit_endpoint: str = ""
    inter_item_delay_s: float = 1.0
    node_settle_s: float = 0.6
    item_settle_s: float = 0.05
    experiment_name: str = "SENTINEL"
    storage_backend: str = "local"
    storage_dir: str = ".sentinel"
    storage_container: str = "sentinel-state"
    export_provider: str = "earth_engine"
    gee_project_id: str = ""
    export_scale_m: float = 10.0
    export_bucket: str = ""
    export_drive_folder: str = "SentinelExports"
    export_asset_root: str = ""
    telemetry_max_entries: int = 500
    download_timeout_s: float = 300.0

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a numeric value is out of range
                or a required string value is empty.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``AUDIT_TIMEOUT_SECONDS=abc``).
        """
        config = cls(
            audit_timeout_s=float(os.getenv("AUDIT_TIMEOUT_SECONDS", "30")),
            audit_endpoint=os.getenv("AUDIT_ENDPOINT", ""),
            inter_item_delay_s=float(os.getenv("INTER_ITEM_DELAY_SECONDS", "1.0")),
            node_settle_s=float(os.getenv("NODE_SETTLE_SECONDS", "0.6")),
            item_settle_s=float(os.getenv("ITEM_SETTLE_SECONDS", "0.05")),
            experiment_name=os.getenv("EXPERIMENT_NAME", "SENTINEL"),
            storage_backend=os.getenv("STORAGE_BACKEND", "local"),
            storage_dir=os.getenv("STORAGE_DIR", ".sentinel"),
            storage_container=os.getenv("STORAGE_CONTAINER", "sentinel-state"),
            export_provider=os.getenv("EXPORT_PROVIDER", "earth_engine"),
            gee_project_id=os.getenv("GEE_PROJECT_ID", ""),
            export_scale_m=float(os.getenv("EXPORT_SCALE_M", "10")),
            export_bucket=os.getenv("EXPORT_BUCKET", ""),
            export_drive_folder=os.getenv("EXPORT_DRIVE_FOLDER", "SentinelExports"),
            export_asset_root=os.getenv("EXPORT_ASSET_ROOT", ""),
            telemetry_max_entries=int(os.getenv("TELEMETRY_MAX_ENTRIES", "500")),
            download_timeout_s=float(os.getenv("DOWNLOAD_TIMEOUT_SECONDS", "300")),
        )
        _validate(config)
        return config


def _validate(config: PipelineConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    if config.audit_timeout_s <= 0:
        raise ConfigValidationError(
            "AUDIT_TIMEOUT_SECONDS",
            config.audit_timeout_s,
            "must be > 0 (seconds)",
        )

    for key, value in (
        ("INTER_ITEM_DELAY_SECONDS", config.inter_item_delay_s),
        ("NODE_SETTLE_SECONDS", config.node_settle_s),
        ("ITEM_SETTLE_SECONDS", config.item_settle_s),
    ):
        if value < 0:
            raise ConfigValidationError(key, value, "must be >= 0 (seconds)")

    if not config.experiment_name.strip():
        raise ConfigValidationError(
            "EXPERIMENT_NAME",
            config.experiment_name,
            "must not be empty",
        )

    if config.storage_backend not in STORAGE_BACKENDS:
        raise ConfigValidationError(
            "STORAGE_BACKEND",
            config.storage_backend,
            f"must be one of {', '.join(sorted(STORAGE_BACKENDS))}",
        )

    if config.storage_backend == "local" and not config.storage_dir:
        raise ConfigValidationError("STORAGE_DIR", config.storage_dir, "must not be empty")

    if config.storage_backend == "blob" and not config.storage_container:
        raise ConfigValidationError(
            "STORAGE_CONTAINER",
            config.storage_container,
            "must not be empty",
        )

    if config.export_scale_m <= 0:
        raise ConfigValidationError("EXPORT_SCALE_M", config.export_scale_m, "must be > 0 (metres)")

    if config.telemetry_max_entries < 1:
        raise ConfigValidationError(
            "TELEMETRY_MAX_ENTRIES",
            config.telemetry_max_entries,
            "must be >= 1",
        )

    if config.download_timeout_s <= 0:
        raise ConfigValidationError(
            "DOWNLOAD_TIMEOUT_SECONDS",
            config.download_timeout_s,
            "must be > 0 (seconds)",
        )
