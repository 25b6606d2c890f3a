"""External service ports and their adapters.

Implements the port/adapter pattern for every collaborator outside the
orchestration core:
- ImageryProvider: discovery + export (``EarthEngineAdapter``)
- AuditPort: kernel validation (``HttpAuditClient``)
- ArtifactFetcher: artifact byte retrieval (``HttpArtifactFetcher``)
- LocalStorageAccess / ClientDownloadSink: local saving and its fallback
- ReportSynthesisService: free-text reporting

The active imagery provider is selected via configuration through the
provider factory.
"""

from sentinel_pipeline.providers.base import (
    ArtifactFetcher,
    AuditPort,
    ClientDownloadSink,
    ExportService,
    ImageryDiscoveryService,
    ImageryProvider,
    LocalStorageAccess,
    LocalStorageHandle,
    ProviderAuthError,
    ProviderConfig,
    ProviderDownloadError,
    ProviderError,
    ProviderExportError,
    ProviderSearchError,
    ReportSynthesisService,
)
from sentinel_pipeline.providers.factory import (
    EARTH_ENGINE,
    get_provider,
    list_providers,
    register_provider,
)

__all__ = [
    "EARTH_ENGINE",
    "ArtifactFetcher",
    "AuditPort",
    "ClientDownloadSink",
    "ExportService",
    "ImageryDiscoveryService",
    "ImageryProvider",
    "LocalStorageAccess",
    "LocalStorageHandle",
    "ProviderAuthError",
    "ProviderConfig",
    "ProviderDownloadError",
    "ProviderError",
    "ProviderExportError",
    "ProviderSearchError",
    "ReportSynthesisService",
    "get_provider",
    "list_providers",
    "register_provider",
]
