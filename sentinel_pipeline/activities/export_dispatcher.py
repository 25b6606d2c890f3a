"""Export Dispatcher: destination-specific per-item export strategies.

``ExportDispatcher.open_batch`` returns the strategy for one batch.  The
orchestrator calls ``prepare()`` once and then ``export_item()`` for each
item in turn:

- ``LocalSave`` acquires the local write handle exactly once.  If a
  security policy refuses it, the batch switches to the client download
  sink for every item (one WARN entry for the whole batch).  An operator
  decline, or a refusal with no sink, propagates out of ``prepare()``.
- ``RemoteDriveExport`` / ``RemoteAssetExport`` / ``RemoteBucketExport``
  build one ``ExportSpecification`` per item with the band transform
  selected from the kernel id and queue it on the export service.

``export_item`` never raises: every per-item failure is logged and
returned as a failed ``ItemOutcome``.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING

from sentinel_pipeline.activities.band_transforms import select_transform
from sentinel_pipeline.core.constants import Destination
from sentinel_pipeline.core.exceptions import (
    ContractError,
    FallbackUnavailableError,
    PerItemExportError,
    PermissionDenialError,
    PipelineError,
)
from sentinel_pipeline.models.results import ExportSpecification, ItemOutcome
from sentinel_pipeline.providers.base import ProviderError, describe_provider_error

if TYPE_CHECKING:
    from sentinel_pipeline.core.telemetry import TelemetryLog
    from sentinel_pipeline.models.imagery import ImageryItem, RegionOfInterest
    from sentinel_pipeline.models.kernel import AlgorithmKernel
    from sentinel_pipeline.providers.base import (
        ArtifactFetcher,
        ClientDownloadSink,
        ExportService,
        LocalStorageAccess,
        LocalStorageHandle,
    )

logger = logging.getLogger("sentinel_pipeline.activities.export_dispatcher")


class ExportStrategy(abc.ABC):
    """Per-batch export behaviour for one destination kind."""

    destination: Destination

    def __init__(self, kernel: AlgorithmKernel, roi: RegionOfInterest) -> None:
        self._kernel = kernel
        self._roi = roi

    @property
    def using_fallback(self) -> bool:
        return False

    async def prepare(self) -> None:  # noqa: B027
        """Run once before the first item; no-op by default."""

    def _discard(self, item: ImageryItem) -> None:  # noqa: B027
        """Undo per-item state after a failed export; no-op by default."""

    async def export_item(self, item: ImageryItem, artifact_name: str) -> ItemOutcome:
        try:
            return await self._export(item, artifact_name)
        except Exception as exc:
            error = _as_item_error(item.item_id, exc)
            self._discard(item)
            details = describe_provider_error(exc) if isinstance(exc, ProviderError) else error.to_error_dict()
            logger.warning(
                "Item export failed | item=%s | destination=%s | %s",
                item.item_id,
                self.destination.value,
                details,
            )
            return ItemOutcome(
                item_id=item.item_id,
                ok=False,
                artifact_name=artifact_name,
                error=error.message,
                via_fallback=self.using_fallback,
            )

    @abc.abstractmethod
    async def _export(self, item: ImageryItem, artifact_name: str) -> ItemOutcome: ...


def _as_item_error(item_id: str, exc: Exception) -> PerItemExportError:
    if isinstance(exc, PerItemExportError):
        return exc
    message = str(exc) if isinstance(exc, PipelineError) else f"{type(exc).__name__}: {exc}"
    error = PerItemExportError(item_id, message, correlation_id=item_id)
    error.__cause__ = exc
    return error


# ---------------------------------------------------------------------------
# Local save
# ---------------------------------------------------------------------------


class LocalSave(ExportStrategy):
    destination = Destination.LOCAL

    def __init__(
        self,
        kernel: AlgorithmKernel,
        roi: RegionOfInterest,
        *,
        export_service: ExportService,
        fetcher: ArtifactFetcher,
        local_access: LocalStorageAccess,
        download_sink: ClientDownloadSink | None,
        telemetry: TelemetryLog | None = None,
    ) -> None:
        super().__init__(kernel, roi)
        self._export_service = export_service
        self._fetcher = fetcher
        self._local_access = local_access
        self._sink = download_sink
        self._telemetry = telemetry
        self._handle: LocalStorageHandle | None = None
        self._fallback = False
        self._prepared = False

    @property
    def using_fallback(self) -> bool:
        return self._fallback

    def _discard(self, item: ImageryItem) -> None:
        item.local_path = None

    async def prepare(self) -> None:
        """Acquire the local handle, or engage the download fallback.

        Raises:
            HandleDeclinedError: The operator declined the handle.
            FallbackUnavailableError: The handle was refused and no
                download sink is available.
        """
        if self._prepared:
            return
        try:
            self._handle = await self._local_access.acquire_handle()
        except PermissionDenialError as exc:
            if self._sink is None:
                msg = f"Local write refused and no download fallback is available: {exc.message}"
                raise FallbackUnavailableError(msg) from exc
            self._fallback = True
            logger.warning("Local handle refused; using download fallback | reason=%s", exc.message)
            if self._telemetry is not None:
                self._telemetry.error(f"Local write access refused: {exc.message}", exc.to_error_dict())
                self._telemetry.warn("Switching to download fallback for this batch.")
        self._prepared = True

    async def _export(self, item: ImageryItem, artifact_name: str) -> ItemOutcome:
        if self._handle is None and not (self._fallback and self._sink is not None):
            msg = "LocalSave.prepare() must run before export_item()"
            raise ContractError(msg, stage="dispatch")

        reference = await self._export_service.generate_artifact_reference(
            item.item_id,
            self._kernel.kernel_id,
            self._roi,
            artifact_name,
        )
        data = await self._fetcher.fetch(reference)

        if self._handle is not None:
            path = await self._handle.write(reference.filename, data)
        else:
            path = await self._sink.save(reference.filename, data)  # type: ignore[union-attr]

        item.local_path = path
        logger.info("Item saved locally | item=%s | path=%s | bytes=%d", item.item_id, path, len(data))
        return ItemOutcome(
            item_id=item.item_id,
            ok=True,
            artifact_name=artifact_name,
            local_path=path,
            via_fallback=self._fallback,
        )


# ---------------------------------------------------------------------------
# Remote batch exports
# ---------------------------------------------------------------------------


class RemoteExport(ExportStrategy):
    def __init__(
        self,
        kernel: AlgorithmKernel,
        roi: RegionOfInterest,
        *,
        export_service: ExportService,
        scale_m: float = 10.0,
    ) -> None:
        super().__init__(kernel, roi)
        self._export_service = export_service
        self._scale_m = scale_m
        self._transform = select_transform(kernel.kernel_id)

    async def prepare(self) -> None:
        logger.info(
            "Remote export batch | destination=%s | kernel=%s | transform=%s",
            self.destination.value,
            self._kernel.kernel_id,
            self._transform.key,
        )

    async def _export(self, item: ImageryItem, artifact_name: str) -> ItemOutcome:
        spec = ExportSpecification(
            item_id=item.item_id,
            kernel_id=self._kernel.kernel_id,
            transform=self._transform.key,
            bands=self._transform.bands,
            destination=self.destination,
            region=self._roi,
            name_prefix=artifact_name,
            scale_m=self._scale_m,
        )
        task_ids = await self._export_service.submit_batch([spec])
        if len(task_ids) != 1 or not task_ids[0]:
            msg = f"Export service returned {len(task_ids)} task ids for one specification"
            raise ContractError(msg, stage="dispatch", code="EXPORT_RESPONSE_INVALID")
        return ItemOutcome(
            item_id=item.item_id,
            ok=True,
            artifact_name=artifact_name,
            external_task_id=task_ids[0],
        )


class RemoteDriveExport(RemoteExport):
    destination = Destination.DRIVE


class RemoteAssetExport(RemoteExport):
    destination = Destination.ASSET


class RemoteBucketExport(RemoteExport):
    destination = Destination.BUCKET


_REMOTE_STRATEGIES: dict[Destination, type[RemoteExport]] = {
    Destination.DRIVE: RemoteDriveExport,
    Destination.ASSET: RemoteAssetExport,
    Destination.BUCKET: RemoteBucketExport,
}


class ExportDispatcher:
    """Factory for per-batch export strategies.

    Args:
        export_service: Artifact references and the remote export queue.
        fetcher: Artifact byte retrieval.
        local_access: Local write-handle provider for ``LOCAL`` batches.
        download_sink: Fallback for refused local handles; ``None``
            disables the fallback.
        telemetry: Operator event stream.
        scale_m: Pixel scale for remote exports, in metres.
    """

    def __init__(
        self,
        *,
        export_service: ExportService,
        fetcher: ArtifactFetcher,
        local_access: LocalStorageAccess,
        download_sink: ClientDownloadSink | None = None,
        telemetry: TelemetryLog | None = None,
        scale_m: float = 10.0,
    ) -> None:
        self._export_service = export_service
        self._fetcher = fetcher
        self._local_access = local_access
        self._sink = download_sink
        self._telemetry = telemetry
        self._scale_m = scale_m

    def open_batch(
        self,
        destination: Destination,
        kernel: AlgorithmKernel,
        roi: RegionOfInterest,
    ) -> ExportStrategy:
        if destination is Destination.LOCAL:
            return LocalSave(
                kernel,
                roi,
                export_service=self._export_service,
                fetcher=self._fetcher,
                local_access=self._local_access,
                download_sink=self._sink,
                telemetry=self._telemetry,
            )
        return _REMOTE_STRATEGIES[destination](
            kernel,
            roi,
            export_service=self._export_service,
            scale_m=self._scale_m,
        )
