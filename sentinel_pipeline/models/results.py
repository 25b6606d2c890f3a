"""Tagged result types crossing the external-service boundary.

External responses (audit verdicts, artifact references, export
submissions) are validated into these types before they reach core
logic, and per-item dispatch results are reported as ``ItemOutcome``
values rather than exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sentinel_pipeline.core.exceptions import ContractError

if TYPE_CHECKING:
    from sentinel_pipeline.core.constants import Destination
    from sentinel_pipeline.models.imagery import RegionOfInterest
    from sentinel_pipeline.models.task import Task

# ---------------------------------------------------------------------------
# Audit verdicts
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AuditAccepted:
    reason: str = ""

    @property
    def valid(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class AuditRejected:
    """A negative verdict.

    Attributes:
        reason: Rejection reason, passed verbatim to the caller.
        unavailable: ``True`` when the verdict was synthesised because the
            auditor timed out or could not be reached.
    """

    reason: str
    unavailable: bool = False

    @property
    def valid(self) -> bool:
        return False


AuditVerdict = AuditAccepted | AuditRejected


def parse_audit_verdict(data: object) -> AuditVerdict:
    """Validate a raw ``{"valid": bool, "reason": str}`` response.

    Raises:
        ContractError: If *data* is not a dict with a boolean ``valid``.
    """
    if not isinstance(data, dict):
        msg = f"Audit response must be an object, got {type(data).__name__}"
        raise ContractError(msg, stage="audit", code="AUDIT_RESPONSE_INVALID")
    valid = data.get("valid")
    if not isinstance(valid, bool):
        msg = f"Audit response 'valid' must be a boolean, got {valid!r}"
        raise ContractError(msg, stage="audit", code="AUDIT_RESPONSE_INVALID")
    reason = data.get("reason") or ""
    if not isinstance(reason, str):
        reason = str(reason)
    if valid:
        return AuditAccepted(reason=reason)
    return AuditRejected(reason=reason or "Logic audit failed.")


# ---------------------------------------------------------------------------
# Export boundary
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ArtifactReference:
    """A single-artifact download reference from the export service."""

    url: str
    filename: str

    def __post_init__(self) -> None:
        if not self.url:
            raise ContractError("Artifact reference has no URL", stage="dispatch")
        if not self.filename:
            raise ContractError("Artifact reference has no filename", stage="dispatch")


@dataclass(frozen=True, slots=True)
class ExportSpecification:
    """One remote export request for one item.

    Attributes:
        item_id: Scene to export.
        kernel_id: Kernel the export runs under.
        transform: Band/index transform key (see ``band_transforms``).
        bands: Source bands the transform reads.
        destination: Remote destination kind.
        region: Export region.
        name_prefix: Deterministic artifact name.
        scale_m: Output pixel scale in metres.
    """

    item_id: str
    kernel_id: str
    transform: str
    bands: tuple[str, ...]
    destination: Destination
    region: RegionOfInterest
    name_prefix: str
    scale_m: float = 10.0


# ---------------------------------------------------------------------------
# Per-item and batch outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ItemOutcome:
    """Result of one per-item dispatch attempt.

    Attributes:
        item_id: The item attempted.
        ok: Whether the export succeeded.
        artifact_name: Deterministic artifact name used.
        local_path: Saved path (local destination, success only).
        external_task_id: Remote queue task id (remote destinations, success only).
        via_fallback: Whether the download fallback was used.
        error: Failure message (failures only).
    """

    item_id: str
    ok: bool
    artifact_name: str = ""
    local_path: str | None = None
    external_task_id: str | None = None
    via_fallback: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemId": self.item_id,
            "ok": self.ok,
            "artifactName": self.artifact_name,
            "localPath": self.local_path,
            "externalTaskId": self.external_task_id,
            "viaFallback": self.via_fallback,
            "error": self.error,
        }


@dataclass(slots=True)
class BatchResult:
    """Aggregate result returned by ``PipelineOrchestrator.dispatch_batch``."""

    task: Task
    outcomes: list[ItemOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def all_failed(self) -> bool:
        return bool(self.outcomes) and self.success_count == 0

    @property
    def failed_items(self) -> list[str]:
        return [o.item_id for o in self.outcomes if not o.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "task": self.task.to_dict(),
            "outcomes": [o.to_dict() for o in self.outcomes],
            "succeeded": self.success_count,
            "failed": self.failure_count,
        }
