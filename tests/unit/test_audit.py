"""Tests for the audit gate and the HTTP auditor client.

Covers:
- Verdict parsing at the boundary
- Timeout and failure normalisation in ``AuditGate``
- ``HttpAuditClient`` request/response handling via ``httpx.MockTransport``
"""

from __future__ import annotations

import json

import httpx
import pytest
from conftest import StaticAuditPort

from sentinel_pipeline.core.exceptions import ContractError
from sentinel_pipeline.kernels.audit import UNAVAILABLE_REASON, AuditGate
from sentinel_pipeline.models.results import AuditAccepted, AuditRejected, parse_audit_verdict
from sentinel_pipeline.providers.audit_http import HttpAuditClient
from sentinel_pipeline.providers.base import ProviderError


class TestParseAuditVerdict:
    def test_accepted(self) -> None:
        verdict = parse_audit_verdict({"valid": True, "reason": "ok"})
        assert verdict == AuditAccepted(reason="ok")
        assert verdict.valid is True

    def test_rejected_reason_passed_through(self) -> None:
        verdict = parse_audit_verdict({"valid": False, "reason": "Uses eval()"})
        assert verdict == AuditRejected(reason="Uses eval()")

    def test_rejected_without_reason_gets_default(self) -> None:
        verdict = parse_audit_verdict({"valid": False})
        assert isinstance(verdict, AuditRejected)
        assert verdict.reason == "Logic audit failed."

    @pytest.mark.parametrize("payload", [None, [], "yes", {"valid": "true"}, {"reason": "x"}])
    def test_malformed(self, payload: object) -> None:
        with pytest.raises(ContractError) as exc_info:
            parse_audit_verdict(payload)
        assert exc_info.value.code == "AUDIT_RESPONSE_INVALID"


class TestAuditGate:
    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError, match="timeout"):
            AuditGate(None, timeout_s=0)

    @pytest.mark.asyncio()
    async def test_passes_accept_through(self) -> None:
        gate = AuditGate(StaticAuditPort(AuditAccepted("clean")))
        assert await gate.check("x") == AuditAccepted("clean")

    @pytest.mark.asyncio()
    async def test_passes_reject_through(self) -> None:
        gate = AuditGate(StaticAuditPort(AuditRejected("bad")))
        verdict = await gate.check("x")
        assert verdict == AuditRejected("bad")
        assert verdict.unavailable is False

    @pytest.mark.asyncio()
    async def test_timeout_normalised(self) -> None:
        gate = AuditGate(StaticAuditPort(delay_s=5.0), timeout_s=0.05)
        verdict = await gate.check("x")
        assert verdict == AuditRejected(UNAVAILABLE_REASON, unavailable=True)

    @pytest.mark.asyncio()
    async def test_port_error_normalised(self) -> None:
        gate = AuditGate(StaticAuditPort(error=ProviderError("audit_http", "boom", retryable=True)))
        verdict = await gate.check("x")
        assert isinstance(verdict, AuditRejected)
        assert verdict.unavailable is True
        assert verdict.reason == UNAVAILABLE_REASON

    @pytest.mark.asyncio()
    async def test_missing_port_normalised(self) -> None:
        verdict = await AuditGate(None).check("x")
        assert verdict == AuditRejected(UNAVAILABLE_REASON, unavailable=True)

    @pytest.mark.asyncio()
    async def test_non_verdict_return_normalised(self) -> None:
        port = StaticAuditPort()
        port.verdict = {"valid": True}  # type: ignore[assignment]
        verdict = await AuditGate(port).check("x")
        assert isinstance(verdict, AuditRejected)
        assert verdict.unavailable is True


def _client(handler: httpx.MockTransport | None = None, **kwargs: object) -> HttpAuditClient:
    return HttpAuditClient("https://auditor.test/audit", transport=handler, **kwargs)  # type: ignore[arg-type]


class TestHttpAuditClient:
    def test_requires_endpoint(self) -> None:
        with pytest.raises(ValueError, match="endpoint"):
            HttpAuditClient("")

    @pytest.mark.asyncio()
    async def test_posts_code_and_parses_verdict(self) -> None:
        seen: list[dict[str, object]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"valid": False, "reason": "Network access"})

        verdict = await _client(httpx.MockTransport(handler)).audit("fetch('x')")

        assert seen == [{"code": "fetch('x')"}]
        assert verdict == AuditRejected("Network access")

    @pytest.mark.asyncio()
    async def test_http_error_status(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        with pytest.raises(ProviderError) as exc_info:
            await _client(transport).audit("x")
        assert exc_info.value.retryable is True
        assert "503" in exc_info.value.message

    @pytest.mark.asyncio()
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProviderError, match="unreachable"):
            await _client(httpx.MockTransport(handler)).audit("x")

    @pytest.mark.asyncio()
    async def test_non_json_body(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderError, match="non-JSON"):
            await _client(transport).audit("x")

    @pytest.mark.asyncio()
    async def test_malformed_verdict(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"ok": 1}))
        with pytest.raises(ContractError):
            await _client(transport).audit("x")

    @pytest.mark.asyncio()
    async def test_gate_normalises_http_failure(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        verdict = await AuditGate(_client(transport)).check("x")
        assert verdict == AuditRejected(UNAVAILABLE_REASON, unavailable=True)
