"""HTTP kernel auditor client.

Posts ``{"code": <source>}`` to the configured audit endpoint and
validates the JSON ``{"valid": bool, "reason": str}`` response into an
``AuditVerdict``.  Transport failures and malformed payloads are raised
here; ``AuditGate`` turns them into "unavailable" rejections.
"""

from __future__ import annotations

import logging

import httpx

from sentinel_pipeline.models.results import AuditVerdict, parse_audit_verdict
from sentinel_pipeline.providers.base import AuditPort, ProviderError

logger = logging.getLogger(__name__)

PROVIDER_NAME = "audit_http"


class HttpAuditClient(AuditPort):
    """``AuditPort`` backed by an HTTP JSON endpoint.

    Args:
        endpoint: Full URL of the audit endpoint.
        timeout_s: Per-request timeout handed to httpx.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        endpoint: str,
        *,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not endpoint:
            msg = "Audit endpoint must be non-empty"
            raise ValueError(msg)
        self._endpoint = endpoint
        self._timeout_s = timeout_s
        self._transport = transport

    async def audit(self, code: str) -> AuditVerdict:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_s,
                transport=self._transport,
            ) as client:
                response = await client.post(self._endpoint, json={"code": code})
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            msg = f"Auditor returned HTTP {exc.response.status_code}"
            raise ProviderError(PROVIDER_NAME, msg, retryable=True) from exc
        except httpx.HTTPError as exc:
            msg = f"Auditor unreachable: {exc}"
            raise ProviderError(PROVIDER_NAME, msg, retryable=True) from exc
        except ValueError as exc:
            msg = f"Auditor returned non-JSON body: {exc}"
            raise ProviderError(PROVIDER_NAME, msg) from exc

        verdict = parse_audit_verdict(payload)
        logger.debug("Audit verdict | valid=%s | chars=%d", verdict.valid, len(code))
        return verdict
