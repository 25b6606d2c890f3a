"""Abstract ports for every external collaborator of the pipeline core.

The orchestrator, the export dispatcher and the kernel registry talk
only to these interfaces; they never know which concrete adapter is
behind them.  All port methods are coroutines so that each external call
is an explicit suspension point on the event loop.

Ports:
    ImageryDiscoveryService  -- ``search(roi, filters)``
    ExportService            -- ``generate_artifact_reference(...)`` / ``submit_batch(specs)``
    AuditPort                -- ``audit(code)``
    ArtifactFetcher          -- ``fetch(reference)``
    LocalStorageAccess       -- ``acquire_handle()`` -> ``LocalStorageHandle``
    ClientDownloadSink       -- ``save(filename, data)``
    ReportSynthesisService   -- ``synthesize(snapshot, intent)``

``ImageryProvider`` bundles discovery and export for adapters (such as
Earth Engine) that serve both from one SDK session.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sentinel_pipeline.core.exceptions import PipelineError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sentinel_pipeline.models.imagery import ImageryItem, RegionOfInterest, SearchFilters
    from sentinel_pipeline.models.results import (
        ArtifactReference,
        AuditVerdict,
        ExportSpecification,
    )
    from sentinel_pipeline.models.snapshot import WorkflowRun


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Configuration handed to an imagery provider adapter.

    Attributes:
        name: Registered provider name (e.g. ``"earth_engine"``).
        project_id: Cloud project the provider session is bound to.
        scale_m: Default export pixel scale in metres.
        extra_params: Provider-specific options (bucket name, asset root ...).
    """

    name: str
    project_id: str = ""
    scale_m: float = 10.0
    extra_params: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Discovery and export
# ---------------------------------------------------------------------------


class ImageryDiscoveryService(abc.ABC):
    @abc.abstractmethod
    async def search(
        self,
        roi: RegionOfInterest,
        filters: SearchFilters,
    ) -> list[ImageryItem]:
        """Return scenes intersecting *roi* that satisfy *filters*.

        Raises:
            ProviderSearchError: On transient or permanent API errors.
        """


class ExportService(abc.ABC):
    @abc.abstractmethod
    async def generate_artifact_reference(
        self,
        item_id: str,
        kernel_id: str,
        roi: RegionOfInterest,
        name_prefix: str,
    ) -> ArtifactReference:
        """Request a single-artifact download reference for one item."""

    @abc.abstractmethod
    async def submit_batch(self, specs: Sequence[ExportSpecification]) -> list[str]:
        """Queue remote export jobs and return one external task id per export specification."""


class ImageryProvider(ImageryDiscoveryService, ExportService):
    """An adapter serving both discovery and export from one session.

    Example usage::

        provider = get_provider("earth_engine", config)
        items = await provider.search(roi, filters)
        ref = await provider.generate_artifact_reference(items[0].item_id, "true_color", roi, "S2_X")
    """

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> ProviderConfig:
        return self._config


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditPort(abc.ABC):
    @abc.abstractmethod
    async def audit(self, code: str) -> AuditVerdict:
        """Judge whether *code* is a valid processing kernel.

        Implementations may raise on transport failure or return an
        unparseable payload; the audit gate normalises both.
        """


# ---------------------------------------------------------------------------
# Artifact transfer
# ---------------------------------------------------------------------------


class ArtifactFetcher(abc.ABC):
    @abc.abstractmethod
    async def fetch(self, reference: ArtifactReference) -> bytes:
        """Retrieve the bytes behind *reference*."""


class LocalStorageHandle(abc.ABC):
    """A granted write handle on the operator's local file system."""

    @abc.abstractmethod
    async def write(self, filename: str, data: bytes) -> str:
        """Write *data* under *filename* and return the written path."""


class LocalStorageAccess(abc.ABC):
    @abc.abstractmethod
    async def acquire_handle(self) -> LocalStorageHandle:
        """Ask for a local write handle.

        Raises:
            PermissionDenialError: A security policy refused the handle.
            HandleDeclinedError: The operator declined the request.
        """


class ClientDownloadSink(abc.ABC):
    """Client-side download used when the local handle is refused."""

    @abc.abstractmethod
    async def save(self, filename: str, data: bytes) -> str:
        """Hand *data* to the client download mechanism; return its location."""


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


class ReportSynthesisService(abc.ABC):
    @abc.abstractmethod
    async def synthesize(self, snapshot: WorkflowRun, intent: str) -> str:
        """Produce a free-text report for *snapshot* shaped by *intent*."""


# ---------------------------------------------------------------------------
# Provider exceptions
# ---------------------------------------------------------------------------


class ProviderError(PipelineError):
    """Base exception for provider adapter errors.

    Attributes:
        provider: Name of the provider that raised the error.
        message: Human-readable error description.
        retryable: Whether the caller should retry the operation.
    """

    default_stage = "provider"
    default_code = "PROVIDER_ERROR"

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        retryable: bool = False,
    ) -> None:
        self.provider = provider
        super().__init__(
            message,
            retryable=retryable,
            code=self.default_code,
            stage=self.default_stage,
        )

    def __str__(self) -> str:
        return f"[{self.provider}] {self.message}"


class ProviderAuthError(ProviderError):
    """Authentication or project-binding failure with the provider API."""

    default_code = "PROVIDER_AUTH_FAILED"

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(provider, message, retryable=False)


class ProviderSearchError(ProviderError):
    """Error during imagery archive search."""

    default_code = "PROVIDER_SEARCH_FAILED"


class ProviderExportError(ProviderError):
    """Error while generating an artifact reference or queueing an export."""

    default_code = "PROVIDER_EXPORT_FAILED"


class ProviderDownloadError(ProviderError):
    """Error while retrieving artifact bytes."""

    default_code = "PROVIDER_DOWNLOAD_FAILED"


def describe_provider_error(exc: ProviderError) -> dict[str, Any]:
    """Return ``to_error_dict()`` extended with the provider name."""
    payload: dict[str, Any] = dict(exc.to_error_dict())
    payload["provider"] = exc.provider
    return payload
