"""Audit gate: the only path from kernel code to an audit verdict.

``AuditGate.check`` bounds every Audit Port call with ``asyncio.wait_for``
and converts every failure mode (timeout, transport error, malformed
verdict, missing auditor) into ``AuditRejected(unavailable=True)``
carrying a generic reason.  It never raises and never waits longer than
its timeout.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sentinel_pipeline.core.exceptions import AuditServiceUnavailableError, PipelineError
from sentinel_pipeline.models.results import AuditAccepted, AuditRejected, AuditVerdict

if TYPE_CHECKING:
    from sentinel_pipeline.providers.base import AuditPort

logger = logging.getLogger("sentinel_pipeline.kernels.audit")

UNAVAILABLE_REASON = "Auditor connection failure."


class AuditGate:
    """Timeout-bounded, failure-normalising wrapper around an ``AuditPort``.

    Args:
        port: The auditor; ``None`` means no auditor is configured and
            every submission is rejected as unavailable.
        timeout_s: Upper bound on a single audit call, in seconds.
    """

    def __init__(self, port: AuditPort | None, *, timeout_s: float = 30.0) -> None:
        if timeout_s <= 0:
            msg = f"Audit timeout must be > 0, got {timeout_s}"
            raise ValueError(msg)
        self._port = port
        self._timeout_s = timeout_s

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    async def check(self, code: str) -> AuditVerdict:
        if self._port is None:
            return self._unavailable(AuditServiceUnavailableError("No auditor configured"))

        try:
            verdict = await asyncio.wait_for(self._port.audit(code), timeout=self._timeout_s)
        except TimeoutError:
            return self._unavailable(
                AuditServiceUnavailableError(f"Audit timed out after {self._timeout_s:.1f}s")
            )
        except Exception as exc:
            detail = exc.message if isinstance(exc, PipelineError) else repr(exc)
            return self._unavailable(AuditServiceUnavailableError(detail))

        if not isinstance(verdict, AuditAccepted | AuditRejected):
            return self._unavailable(
                AuditServiceUnavailableError(f"Auditor returned {type(verdict).__name__}")
            )
        return verdict

    @staticmethod
    def _unavailable(error: AuditServiceUnavailableError) -> AuditRejected:
        logger.warning("Audit unavailable | %s", error.to_error_dict())
        return AuditRejected(reason=UNAVAILABLE_REASON, unavailable=True)
