"""Unified pipeline exception taxonomy.

Every domain exception inherits from ``PipelineError`` and carries
structured context fields that drive logging, telemetry payloads and
the caller's decision to retry.

Taxonomy categories
-------------------
- ``ValidationError``: input/contract violations, never retryable.
- ``TransientError``: temporary failures (network, timeout), retryable.
- ``PermanentError``: unrecoverable domain failures, not retryable.
- ``ContractError``: payload/schema drift or state misuse, never retryable.

Every exception exposes ``to_error_dict()`` for a stable structured
error payload suitable for telemetry entries.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all pipeline-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Pipeline stage where the error occurred
            (e.g. ``"registry"``, ``"dispatch"``).
        code: Machine-readable error code (e.g. ``"NO_IMAGERY"``).
        retryable: Whether the caller may retry the operation.
        correlation_id: Task / run identifier the error relates to.
    """

    #: Default stage for subclasses (override via class attribute or kwarg).
    default_stage: str = ""
    #: Default code for subclasses (override via class attribute or kwarg).
    default_code: str = ""

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool = False,
        correlation_id: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        self.correlation_id = correlation_id
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class."""
        if isinstance(self, ContractError):
            return "contract"
        if isinstance(self, ValidationError):
            return "validation"
        if isinstance(self, TransientError):
            return "transient"
        if isinstance(self, PermanentError):
            return "permanent"
        return "transient" if self.retryable else "permanent"

    def to_error_dict(self) -> dict[str, object]:
        """Return a structured error payload with stable keys."""
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
            "correlation_id": self.correlation_id,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class ValidationError(PipelineError):
    """Input or domain-model validation failure. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class TransientError(PipelineError):
    """Temporary failure that may succeed on retry."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(PipelineError):
    """Unrecoverable domain failure. Not retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class ContractError(PipelineError):
    """Payload or schema drift between components. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Kernel registry
# ---------------------------------------------------------------------------


class KernelRejectedError(ValidationError):
    """The Audit Port rejected a kernel submission.

    Attributes:
        reason: The exact rejection reason returned by the auditor.
        validation: Resolved validation status value (``"INVALID"`` or
            ``"UNSUPPORTED"`` when the auditor could not be reached).
    """

    default_stage = "registry"
    default_code = "KERNEL_REJECTED"

    def __init__(self, reason: str, *, validation: str = "INVALID") -> None:
        self.reason = reason
        self.validation = validation
        super().__init__(reason)


class KernelNotFoundError(ValidationError):
    """No kernel with the requested id exists in the registry."""

    default_stage = "registry"
    default_code = "KERNEL_NOT_FOUND"

    def __init__(self, kernel_id: str) -> None:
        self.kernel_id = kernel_id
        super().__init__(f"Kernel not found: {kernel_id!r}")


class AuditServiceUnavailableError(TransientError):
    """The Audit Port timed out or could not be reached.

    Never escapes the audit gate: it is normalised into a rejected
    verdict with a generic reason.
    """

    default_stage = "audit"
    default_code = "AUDIT_UNAVAILABLE"


# ---------------------------------------------------------------------------
# Preconditions (raised before any Task exists)
# ---------------------------------------------------------------------------


class PreconditionError(ValidationError):
    """A dispatch or workflow precondition was not met."""

    default_stage = "preconditions"
    default_code = "PRECONDITION_FAILED"


class NoImageryError(PreconditionError):
    """The item list is empty (or no item is linked to a local artifact)."""

    default_code = "NO_IMAGERY"


class NoRegionError(PreconditionError):
    """No region-of-interest polygon was supplied."""

    default_code = "NO_REGION"


class KernelNotReadyError(PreconditionError):
    """The selected kernel's validation status is not Valid."""

    default_code = "KERNEL_NOT_READY"


# ---------------------------------------------------------------------------
# Export dispatch
# ---------------------------------------------------------------------------


class PermissionDenialError(PermanentError):
    """The local-storage write handle was refused by a security policy.

    Triggers the one-time batch-level download fallback.
    """

    default_stage = "dispatch"
    default_code = "LOCAL_HANDLE_DENIED"


class HandleDeclinedError(PermanentError):
    """The operator explicitly declined the local-storage handle prompt."""

    default_stage = "dispatch"
    default_code = "LOCAL_HANDLE_DECLINED"


class FallbackUnavailableError(PermanentError):
    """The download fallback could not be established for the batch."""

    default_stage = "dispatch"
    default_code = "FALLBACK_UNAVAILABLE"


class PerItemExportError(TransientError):
    """A single item's export or byte retrieval failed.

    Absorbed at the per-item boundary; never aborts a batch.
    """

    default_stage = "dispatch"
    default_code = "ITEM_EXPORT_FAILED"

    def __init__(self, item_id: str, message: str, **kwargs: object) -> None:
        self.item_id = item_id
        super().__init__(message, **kwargs)


class TaskStateError(ContractError):
    """A Task transition violated its lifecycle (e.g. leaving a terminal state)."""

    default_stage = "task"
    default_code = "TASK_STATE_VIOLATION"


# ---------------------------------------------------------------------------
# Workflow & history
# ---------------------------------------------------------------------------


class WorkflowDefinitionError(ValidationError):
    """The workflow node list is empty or malformed."""

    default_stage = "workflow"
    default_code = "WORKFLOW_INVALID"


class WorkflowExecutionError(PermanentError):
    """A workflow node failed while executing."""

    default_stage = "workflow"
    default_code = "WORKFLOW_NODE_FAILED"


class RunNotFoundError(ValidationError):
    """No snapshot with the requested run id exists in the history store."""

    default_stage = "history"
    default_code = "RUN_NOT_FOUND"

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Workflow run not found: {run_id!r}")
