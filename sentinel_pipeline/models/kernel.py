"""Processing kernel model.

An ``AlgorithmKernel`` is a named unit of per-image processing logic.
Kernels are frozen: registry operations produce updated copies with
``dataclasses.replace`` so that a batch holding a kernel reference
always sees the source code it started with.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Any, TypedDict

from sentinel_pipeline.models.imagery import ModelValidationError


class KernelAuthor(enum.Enum):
    SYSTEM = "System"
    USER = "User"


class KernelPersistence(enum.Enum):
    EPHEMERAL = "Ephemeral"
    PERSISTED = "Persisted"


class ValidationStatus(enum.Enum):
    """Audit outcome of a kernel.

    Values:
        VALID:       Accepted by the auditor; selectable for dispatch.
        INVALID:     Rejected by the auditor.
        UNSUPPORTED: The auditor could not be reached or gave no usable verdict.
        TESTING:     Audit in flight.
    """

    VALID = "VALID"
    INVALID = "INVALID"
    UNSUPPORTED = "UNSUPPORTED"
    TESTING = "TESTING"


class KernelEntry(TypedDict):
    """Persisted layout of a kernel in the kernel collection."""

    id: str
    name: str
    desc: str
    code: str
    author: str
    isPersistent: bool


@dataclass(frozen=True, slots=True)
class AlgorithmKernel:
    """A processing kernel.

    Attributes:
        kernel_id: Unique identifier (``wf_custom_<hex>`` for user kernels).
        name: Display name.
        description: What the kernel does.
        code: Kernel source code text.
        author: ``SYSTEM`` kernels are immutable.
        persistence: ``EPHEMERAL`` until explicitly saved.
        validation: Audit status; System kernels are always ``VALID``.
        audit_reason: Reason text of the most recent audit, if any.
    """

    kernel_id: str
    name: str
    description: str
    code: str
    author: KernelAuthor = KernelAuthor.USER
    persistence: KernelPersistence = KernelPersistence.EPHEMERAL
    validation: ValidationStatus = ValidationStatus.TESTING
    audit_reason: str = ""

    def __post_init__(self) -> None:
        if not self.kernel_id.strip():
            raise ModelValidationError("AlgorithmKernel", "kernel_id", self.kernel_id, "must not be empty")
        if not self.name.strip():
            raise ModelValidationError("AlgorithmKernel", "name", self.name, "must not be empty")
        if self.author is KernelAuthor.SYSTEM and self.validation is not ValidationStatus.VALID:
            raise ModelValidationError(
                "AlgorithmKernel",
                "validation",
                self.validation,
                "system kernels are always VALID",
            )

    @property
    def is_system(self) -> bool:
        return self.author is KernelAuthor.SYSTEM

    @property
    def is_persistent(self) -> bool:
        return self.persistence is KernelPersistence.PERSISTED

    @property
    def is_valid(self) -> bool:
        return self.validation is ValidationStatus.VALID

    def persisted(self) -> AlgorithmKernel:
        """Return a copy promoted to ``PERSISTED``."""
        return replace(self, persistence=KernelPersistence.PERSISTED)

    def to_entry(self) -> KernelEntry:
        return KernelEntry(
            id=self.kernel_id,
            name=self.name,
            desc=self.description,
            code=self.code,
            author=self.author.value,
            isPersistent=self.is_persistent,
        )

    @classmethod
    def from_entry(cls, entry: dict[str, Any]) -> AlgorithmKernel:
        """Rebuild a kernel from its persisted entry.

        Only audited kernels are ever written, so reloaded kernels are
        ``VALID``.
        """
        return cls(
            kernel_id=str(entry["id"]),
            name=str(entry["name"]),
            description=str(entry.get("desc", "")),
            code=str(entry.get("code", "")),
            author=KernelAuthor(entry.get("author", KernelAuthor.USER.value)),
            persistence=(
                KernelPersistence.PERSISTED
                if entry.get("isPersistent", True)
                else KernelPersistence.EPHEMERAL
            ),
            validation=ValidationStatus.VALID,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.kernel_id,
            "name": self.name,
            "desc": self.description,
            "code": self.code,
            "author": self.author.value,
            "persistence": self.persistence.value,
            "validation": self.validation.value,
            "auditReason": self.audit_reason,
        }
