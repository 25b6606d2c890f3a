"""Composition root.

Builds the long-lived pipeline objects from a ``PipelineConfig``:
telemetry, the two persisted collections, the audited kernel registry,
the history store, the workflow engine, the export dispatcher and the
orchestrator.  Every port can be overridden, which is how tests and
alternative hosts swap adapters in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from sentinel_pipeline.activities.export_dispatcher import ExportDispatcher
from sentinel_pipeline.analysis.metrics import HashMetricComputer
from sentinel_pipeline.core.config import PipelineConfig
from sentinel_pipeline.core.constants import HISTORY_COLLECTION, KERNEL_COLLECTION
from sentinel_pipeline.core.telemetry import TelemetryLog
from sentinel_pipeline.kernels.audit import AuditGate
from sentinel_pipeline.kernels.registry import KernelRegistry
from sentinel_pipeline.orchestrators.pipeline import PipelineOrchestrator
from sentinel_pipeline.orchestrators.workflow_engine import WorkflowEngine
from sentinel_pipeline.providers.artifact_fetch import HttpArtifactFetcher
from sentinel_pipeline.providers.audit_http import HttpAuditClient
from sentinel_pipeline.providers.factory import provider_from_config
from sentinel_pipeline.providers.local_storage import DirectoryStorageAccess, DownloadsFolderSink
from sentinel_pipeline.storage.collections import open_collection
from sentinel_pipeline.storage.history import ExecutionHistoryStore

if TYPE_CHECKING:
    from azure.storage.blob import BlobServiceClient

    from sentinel_pipeline.analysis.metrics import MetricComputer
    from sentinel_pipeline.providers.base import (
        ArtifactFetcher,
        AuditPort,
        ClientDownloadSink,
        ImageryProvider,
        LocalStorageAccess,
        ReportSynthesisService,
    )

logger = logging.getLogger("sentinel_pipeline.core.service")

#: Sub-directory of ``STORAGE_DIR`` receiving LOCAL exports.
EXPORTS_SUBDIR = "exports"


@dataclass(slots=True)
class PipelineService:
    """The wired object graph for one host process."""

    config: PipelineConfig
    telemetry: TelemetryLog
    registry: KernelRegistry
    history: ExecutionHistoryStore
    engine: WorkflowEngine
    dispatcher: ExportDispatcher
    orchestrator: PipelineOrchestrator


def build_service(
    config: PipelineConfig | None = None,
    *,
    blob_service_client: BlobServiceClient | None = None,
    provider: ImageryProvider | None = None,
    audit_port: AuditPort | None = None,
    fetcher: ArtifactFetcher | None = None,
    local_access: LocalStorageAccess | None = None,
    download_sink: ClientDownloadSink | None = None,
    metrics: MetricComputer | None = None,
    reports: ReportSynthesisService | None = None,
) -> PipelineService:
    """Wire the pipeline.

    Args:
        config: Pipeline configuration; loaded from the environment when omitted.
        blob_service_client: Required when ``STORAGE_BACKEND=blob``.
        provider: Discovery/export adapter; resolved through the provider
            factory from ``EXPORT_PROVIDER`` when omitted.
        audit_port: Kernel auditor; an ``HttpAuditClient`` is built when
            ``AUDIT_ENDPOINT`` is set, otherwise every submission is
            rejected as unavailable.
        fetcher: Artifact byte retrieval (``HttpArtifactFetcher`` by default).
        local_access: Local write-handle provider (``<STORAGE_DIR>/exports``).
        download_sink: Download fallback (``~/Downloads``).
        metrics: Metric computer (``HashMetricComputer``).
        reports: Optional report synthesis service.

    Raises:
        ConfigValidationError: The environment configuration is invalid.
        ProviderError: ``EXPORT_PROVIDER`` names an unknown adapter.
    """
    config = config or PipelineConfig.from_env()
    telemetry = TelemetryLog(max_entries=config.telemetry_max_entries)

    if audit_port is None and config.audit_endpoint:
        audit_port = HttpAuditClient(config.audit_endpoint, timeout_s=config.audit_timeout_s)
    gate = AuditGate(audit_port, timeout_s=config.audit_timeout_s)

    registry = KernelRegistry(
        open_collection(config, KERNEL_COLLECTION, blob_service_client=blob_service_client),
        gate,
        telemetry=telemetry,
    )
    history = ExecutionHistoryStore(
        open_collection(config, HISTORY_COLLECTION, blob_service_client=blob_service_client),
    )
    engine = WorkflowEngine(
        metrics or HashMetricComputer(),
        history,
        telemetry,
        node_settle_s=config.node_settle_s,
        item_settle_s=config.item_settle_s,
    )

    provider = provider or provider_from_config(config)
    dispatcher = ExportDispatcher(
        export_service=provider,
        fetcher=fetcher or HttpArtifactFetcher(timeout_s=config.download_timeout_s),
        local_access=local_access or DirectoryStorageAccess(Path(config.storage_dir) / EXPORTS_SUBDIR),
        download_sink=download_sink or DownloadsFolderSink(),
        telemetry=telemetry,
        scale_m=config.export_scale_m,
    )
    orchestrator = PipelineOrchestrator(
        registry=registry,
        dispatcher=dispatcher,
        engine=engine,
        history=history,
        telemetry=telemetry,
        discovery=provider,
        reports=reports,
        experiment_name=config.experiment_name,
        inter_item_delay_s=config.inter_item_delay_s,
    )

    logger.info(
        "Pipeline service built | storage=%s | provider=%s | audit=%s | kernels=%d | runs=%d",
        config.storage_backend,
        provider.name,
        "configured" if audit_port is not None else "none",
        len(registry),
        len(history),
    )
    return PipelineService(
        config=config,
        telemetry=telemetry,
        registry=registry,
        history=history,
        engine=engine,
        dispatcher=dispatcher,
        orchestrator=orchestrator,
    )
