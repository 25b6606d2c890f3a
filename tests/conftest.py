"""Shared pytest fixtures for the Sentinel Pipeline test suite.

Every external port has an in-memory fake here so that orchestrator,
dispatcher and registry tests run without Earth Engine, HTTP or disk.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import date, timedelta

import pytest

from sentinel_pipeline.activities.export_dispatcher import ExportDispatcher
from sentinel_pipeline.analysis.metrics import HashMetricComputer
from sentinel_pipeline.core.exceptions import HandleDeclinedError, PermissionDenialError
from sentinel_pipeline.core.telemetry import TelemetryLog
from sentinel_pipeline.kernels.audit import AuditGate
from sentinel_pipeline.kernels.registry import KernelRegistry
from sentinel_pipeline.models.imagery import ImageryItem, RegionOfInterest, SearchFilters
from sentinel_pipeline.models.results import (
    ArtifactReference,
    AuditAccepted,
    AuditVerdict,
    ExportSpecification,
)
from sentinel_pipeline.orchestrators.pipeline import PipelineOrchestrator
from sentinel_pipeline.orchestrators.workflow_engine import WorkflowEngine
from sentinel_pipeline.providers.base import (
    ArtifactFetcher,
    AuditPort,
    ClientDownloadSink,
    ImageryProvider,
    LocalStorageAccess,
    LocalStorageHandle,
    ProviderConfig,
    ProviderExportError,
)
from sentinel_pipeline.storage.collections import InMemoryCollection
from sentinel_pipeline.storage.history import ExecutionHistoryStore
from sentinel_pipeline.utils.artifact_names import artifact_filename

# ---------------------------------------------------------------------------
# Port fakes
# ---------------------------------------------------------------------------


class FakeImageryProvider(ImageryProvider):
    """Discovery + export fake; items listed in ``fail_items`` fail to export."""

    def __init__(
        self,
        items: Sequence[ImageryItem] = (),
        *,
        fail_items: Sequence[str] = (),
    ) -> None:
        super().__init__(ProviderConfig(name="fake"))
        self.items = list(items)
        self.fail_items = set(fail_items)
        self.search_calls: list[tuple[RegionOfInterest, SearchFilters]] = []
        self.reference_calls: list[tuple[str, str, str]] = []
        self.submitted: list[ExportSpecification] = []

    async def search(self, roi: RegionOfInterest, filters: SearchFilters) -> list[ImageryItem]:
        self.search_calls.append((roi, filters))
        return list(self.items)

    async def generate_artifact_reference(
        self,
        item_id: str,
        kernel_id: str,
        roi: RegionOfInterest,
        name_prefix: str,
    ) -> ArtifactReference:
        self.reference_calls.append((item_id, kernel_id, name_prefix))
        if item_id in self.fail_items:
            raise ProviderExportError("fake", f"no reference for {item_id}", retryable=True)
        return ArtifactReference(
            url=f"https://earthengine.test/download/{name_prefix}",
            filename=artifact_filename(name_prefix),
        )

    async def submit_batch(self, specs: Sequence[ExportSpecification]) -> list[str]:
        task_ids: list[str] = []
        for spec in specs:
            if spec.item_id in self.fail_items:
                raise ProviderExportError("fake", f"queue rejected {spec.item_id}", retryable=True)
            self.submitted.append(spec)
            task_ids.append(f"EE-TASK-{len(self.submitted)}")
        return task_ids


class FakeFetcher(ArtifactFetcher):
    def __init__(self) -> None:
        self.fetched: list[str] = []

    async def fetch(self, reference: ArtifactReference) -> bytes:
        self.fetched.append(reference.url)
        return b"II*\x00" + reference.filename.encode()


class RecordingHandle(LocalStorageHandle):
    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}

    async def write(self, filename: str, data: bytes) -> str:
        self.files[filename] = data
        return f"/exports/{filename}"


class FakeLocalAccess(LocalStorageAccess):
    """Local write access that can be granted, denied by policy or declined."""

    def __init__(self, *, deny: bool = False, decline: bool = False) -> None:
        self.deny = deny
        self.decline = decline
        self.acquire_count = 0
        self.handle = RecordingHandle()

    async def acquire_handle(self) -> LocalStorageHandle:
        self.acquire_count += 1
        if self.decline:
            raise HandleDeclinedError("Operator declined the directory picker")
        if self.deny:
            raise PermissionDenialError("Cross-origin sub-frames may not show a file picker")
        return self.handle


class MemorySink(ClientDownloadSink):
    def __init__(self) -> None:
        self.saved: dict[str, bytes] = {}

    async def save(self, filename: str, data: bytes) -> str:
        self.saved[filename] = data
        return f"/downloads/{filename}"


class StaticAuditPort(AuditPort):
    """Returns *verdict* (or raises *error*) after *delay_s* seconds."""

    def __init__(
        self,
        verdict: AuditVerdict | None = None,
        *,
        error: Exception | None = None,
        delay_s: float = 0.0,
    ) -> None:
        self.verdict = verdict or AuditAccepted()
        self.error = error
        self.delay_s = delay_s
        self.calls: list[str] = []

    async def audit(self, code: str) -> AuditVerdict:
        self.calls.append(code)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.error is not None:
            raise self.error
        return self.verdict


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def roi() -> RegionOfInterest:
    """Small orchard polygon near Perth, WA."""
    return RegionOfInterest.from_coordinates(
        [(115.80, -31.90), (115.82, -31.90), (115.82, -31.88), (115.80, -31.88)]
    )


@pytest.fixture()
def make_item() -> Callable[..., ImageryItem]:
    def _make(index: int, *, local: bool = False, cloud: float = 5.0) -> ImageryItem:
        sensed = date(2024, 1, 5) + timedelta(days=5 * index)
        stamp = sensed.strftime("%Y%m%d")
        item = ImageryItem(
            item_id=f"COPERNICUS/S2_SR_HARMONIZED/{stamp}T030111_{stamp}T030109_T50HMK{index}",
            acquisition_date=sensed,
            cloud_cover_pct=cloud,
            tile_id="50HMK",
        )
        if local:
            item.local_path = f"/exports/scene_{index}.tif"
        return item

    return _make


@pytest.fixture()
def items(make_item: Callable[..., ImageryItem]) -> list[ImageryItem]:
    return [make_item(i) for i in range(3)]


@pytest.fixture()
def local_items(make_item: Callable[..., ImageryItem]) -> list[ImageryItem]:
    return [make_item(i, local=True) for i in range(3)]


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def telemetry() -> TelemetryLog:
    return TelemetryLog()


@pytest.fixture()
def provider(items: list[ImageryItem]) -> FakeImageryProvider:
    return FakeImageryProvider(items)


@pytest.fixture()
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture()
def local_access() -> FakeLocalAccess:
    return FakeLocalAccess()


@pytest.fixture()
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture()
def audit_port() -> StaticAuditPort:
    return StaticAuditPort()


@pytest.fixture()
def kernel_collection() -> InMemoryCollection:
    return InMemoryCollection("SENTINEL_WF_ALGO_LIB")


@pytest.fixture()
def history_collection() -> InMemoryCollection:
    return InMemoryCollection("SENTINEL_WF_HISTORY")


@pytest.fixture()
def registry(
    kernel_collection: InMemoryCollection,
    audit_port: StaticAuditPort,
    telemetry: TelemetryLog,
) -> KernelRegistry:
    return KernelRegistry(kernel_collection, AuditGate(audit_port, timeout_s=1.0), telemetry=telemetry)


@pytest.fixture()
def history(history_collection: InMemoryCollection) -> ExecutionHistoryStore:
    return ExecutionHistoryStore(history_collection)


@pytest.fixture()
def engine(history: ExecutionHistoryStore, telemetry: TelemetryLog) -> WorkflowEngine:
    return WorkflowEngine(
        HashMetricComputer(),
        history,
        telemetry,
        node_settle_s=0,
        item_settle_s=0,
    )


@pytest.fixture()
def dispatcher(
    provider: FakeImageryProvider,
    fetcher: FakeFetcher,
    local_access: FakeLocalAccess,
    sink: MemorySink,
    telemetry: TelemetryLog,
) -> ExportDispatcher:
    return ExportDispatcher(
        export_service=provider,
        fetcher=fetcher,
        local_access=local_access,
        download_sink=sink,
        telemetry=telemetry,
    )


@pytest.fixture()
def orchestrator(
    registry: KernelRegistry,
    dispatcher: ExportDispatcher,
    engine: WorkflowEngine,
    history: ExecutionHistoryStore,
    telemetry: TelemetryLog,
    provider: FakeImageryProvider,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        registry=registry,
        dispatcher=dispatcher,
        engine=engine,
        history=history,
        telemetry=telemetry,
        discovery=provider,
        experiment_name="FARM",
        inter_item_delay_s=0,
    )
