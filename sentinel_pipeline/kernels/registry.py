"""Algorithm Registry.

Holds the System kernels plus every User kernel registered in this
session or persisted in an earlier one.  User kernels enter the registry
only through an accepted audit; they start ``EPHEMERAL`` and become
``PERSISTED`` when explicitly saved, at which point their entry is
written to the kernel collection.  System kernels can be neither saved
nor removed.

Kernels are frozen; ``persist`` swaps the stored instance for an updated
copy, so a batch that already selected a kernel keeps the copy it holds.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sentinel_pipeline.core.exceptions import (
    KernelNotFoundError,
    KernelNotReadyError,
    KernelRejectedError,
)
from sentinel_pipeline.kernels.builtin import BUILTIN_KERNELS
from sentinel_pipeline.models.imagery import ModelValidationError
from sentinel_pipeline.models.kernel import (
    AlgorithmKernel,
    KernelAuthor,
    KernelPersistence,
    ValidationStatus,
)

if TYPE_CHECKING:
    from sentinel_pipeline.core.telemetry import TelemetryLog
    from sentinel_pipeline.kernels.audit import AuditGate
    from sentinel_pipeline.storage.collections import KeyValueCollection

logger = logging.getLogger("sentinel_pipeline.kernels.registry")

CUSTOM_KERNEL_PREFIX = "wf_custom_"


def new_kernel_id() -> str:
    return f"{CUSTOM_KERNEL_PREFIX}{uuid.uuid4().hex[:12]}"


class KernelRegistry:
    """Registry of processing kernels.

    Args:
        collection: Durable collection for persisted User kernels.
        audit_gate: Gate through which every submission is audited.
        telemetry: Optional operator event stream.
    """

    def __init__(
        self,
        collection: KeyValueCollection,
        audit_gate: AuditGate,
        *,
        telemetry: TelemetryLog | None = None,
    ) -> None:
        self._collection = collection
        self._gate = audit_gate
        self._telemetry = telemetry
        self._kernels: dict[str, AlgorithmKernel] = {k.kernel_id: k for k in BUILTIN_KERNELS}
        self._load_persisted()

    def _load_persisted(self) -> None:
        loaded = 0
        for key, entry in self._collection.items():
            try:
                kernel = AlgorithmKernel.from_entry(entry)
            except (KeyError, TypeError, ValueError):
                logger.warning(
                    "Skipping unreadable kernel entry | collection=%s | key=%s",
                    self._collection.name,
                    key,
                )
                continue
            if kernel.kernel_id in self._kernels or kernel.is_system:
                logger.warning("Ignoring persisted entry for a system kernel | id=%s", key)
                continue
            self._kernels[kernel.kernel_id] = kernel
            loaded += 1
        if loaded:
            logger.info("Persisted kernels reloaded | collection=%s | count=%d", self._collection.name, loaded)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def register(self, name: str, description: str, code: str) -> str:
        """Audit *code* and, if accepted, add it as a new User kernel.

        Returns:
            The new kernel id.

        Raises:
            KernelRejectedError: The audit rejected the code (or the
                auditor was unavailable).  The registry is unchanged.
            ModelValidationError: *name* is blank.
        """
        if not name.strip():
            raise ModelValidationError("AlgorithmKernel", "name", name, "must not be empty")

        self._emit_info(f"AUDIT: Initiating logic scan for kernel [{name}]")
        verdict = await self._gate.check(code)

        if not verdict.valid:
            status = (
                ValidationStatus.UNSUPPORTED
                if getattr(verdict, "unavailable", False)
                else ValidationStatus.INVALID
            )
            error = KernelRejectedError(verdict.reason, validation=status.value)
            logger.warning("Kernel rejected | name=%s | validation=%s | reason=%s", name, status.value, verdict.reason)
            if self._telemetry is not None:
                self._telemetry.error(f"AUDIT: Kernel [{name}] rejected: {verdict.reason}", error.to_error_dict())
            raise error

        kernel = AlgorithmKernel(
            kernel_id=new_kernel_id(),
            name=name,
            description=description,
            code=code,
            author=KernelAuthor.USER,
            persistence=KernelPersistence.EPHEMERAL,
            validation=ValidationStatus.VALID,
            audit_reason=verdict.reason,
        )
        self._kernels[kernel.kernel_id] = kernel
        logger.info("Kernel registered | id=%s | name=%s", kernel.kernel_id, name)
        if self._telemetry is not None:
            self._telemetry.success(
                f"Workflow kernel [{name}] registered. Save it to persist.",
                {"kernelId": kernel.kernel_id},
            )
        return kernel.kernel_id

    def persist(self, kernel_id: str) -> bool:
        """Promote a User kernel to ``PERSISTED`` and write its entry.

        Returns:
            ``True`` if the kernel was promoted; ``False`` (no-op) for
            System kernels and kernels that are already persisted.

        Raises:
            KernelNotFoundError: *kernel_id* is unknown.
        """
        kernel = self.get(kernel_id)
        if kernel.is_system:
            logger.warning("Refusing to persist system kernel | id=%s", kernel_id)
            return False
        if kernel.is_persistent:
            logger.warning("Kernel already persisted | id=%s", kernel_id)
            return False

        promoted = kernel.persisted()
        self._collection.put(kernel_id, dict(promoted.to_entry()))
        self._kernels[kernel_id] = promoted
        logger.info("Kernel persisted | id=%s | collection=%s", kernel_id, self._collection.name)
        self._emit_info(f"SYSTEM: Algorithm [{kernel_id}] saved to local storage.")
        return True

    def remove(self, kernel_id: str) -> bool:
        """Delete a User kernel (and its durable entry when persisted).

        Returns:
            ``True`` if removed; ``False`` (no-op) for System kernels.

        Raises:
            KernelNotFoundError: *kernel_id* is unknown.
        """
        kernel = self.get(kernel_id)
        if kernel.is_system:
            logger.warning("Refusing to remove system kernel | id=%s", kernel_id)
            return False
        if kernel.is_persistent:
            self._collection.delete(kernel_id)
        del self._kernels[kernel_id]
        logger.info("Kernel removed | id=%s | was_persistent=%s", kernel_id, kernel.is_persistent)
        self._emit_info(f"SYSTEM: Algorithm [{kernel_id}] removed.")
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, kernel_id: str) -> AlgorithmKernel:
        try:
            return self._kernels[kernel_id]
        except KeyError:
            raise KernelNotFoundError(kernel_id) from None

    def select(self, kernel_id: str) -> AlgorithmKernel:
        """Return the kernel for dispatch.

        Raises:
            KernelNotFoundError: *kernel_id* is unknown.
            KernelNotReadyError: The kernel is not ``VALID``.
        """
        kernel = self.get(kernel_id)
        if not kernel.is_valid:
            msg = f"Kernel {kernel_id!r} is {kernel.validation.value}, not VALID"
            raise KernelNotReadyError(msg)
        return kernel

    def list_kernels(self) -> list[AlgorithmKernel]:
        """Return System kernels first, then User kernels in registration order."""
        kernels = list(self._kernels.values())
        return [k for k in kernels if k.is_system] + [k for k in kernels if not k.is_system]

    def __contains__(self, kernel_id: object) -> bool:
        return kernel_id in self._kernels

    def __len__(self) -> int:
        return len(self._kernels)

    def _emit_info(self, message: str) -> None:
        if self._telemetry is not None:
            self._telemetry.info(message)
