"""Tests for the unified exception taxonomy.

Validates:
- PipelineError hierarchy and structured attributes
- Category classification (validation, transient, permanent, contract)
- ``to_error_dict()`` produces stable payload keys
- Retry semantics are consistent with taxonomy class
- All activity/provider exceptions are PipelineError subclasses
"""

from __future__ import annotations

from typing import ClassVar

import pytest

from sentinel_pipeline.activities.search_imagery import ImagerySearchError
from sentinel_pipeline.core.config import ConfigValidationError
from sentinel_pipeline.core.exceptions import (
    AuditServiceUnavailableError,
    ContractError,
    FallbackUnavailableError,
    HandleDeclinedError,
    KernelNotFoundError,
    KernelNotReadyError,
    KernelRejectedError,
    NoImageryError,
    NoRegionError,
    PerItemExportError,
    PermanentError,
    PermissionDenialError,
    PipelineError,
    PreconditionError,
    RunNotFoundError,
    TaskStateError,
    TransientError,
    ValidationError,
    WorkflowDefinitionError,
    WorkflowExecutionError,
)
from sentinel_pipeline.models.imagery import ModelValidationError
from sentinel_pipeline.providers.base import (
    ProviderAuthError,
    ProviderDownloadError,
    ProviderError,
    ProviderExportError,
    ProviderSearchError,
    describe_provider_error,
)


class TestPipelineErrorBase:
    def test_default_attributes(self) -> None:
        err = PipelineError("boom")
        assert err.message == "boom"
        assert err.stage == ""
        assert err.code == ""
        assert err.retryable is False
        assert err.correlation_id == ""

    def test_custom_attributes(self) -> None:
        err = PipelineError(
            "fail",
            stage="dispatch",
            code="ITEM_EXPORT_FAILED",
            retryable=True,
            correlation_id="GE-abc",
        )
        assert err.stage == "dispatch"
        assert err.code == "ITEM_EXPORT_FAILED"
        assert err.retryable is True
        assert err.correlation_id == "GE-abc"
        assert str(err) == "fail"

    def test_uncategorised_follows_retryable(self) -> None:
        assert PipelineError("x", retryable=True).category == "transient"
        assert PipelineError("x").category == "permanent"

    def test_error_dict_keys(self) -> None:
        payload = PipelineError("x", stage="s", code="C").to_error_dict()
        assert set(payload) == {"category", "code", "stage", "message", "retryable", "correlation_id"}


class TestCategoryBases:
    def test_validation(self) -> None:
        err = ValidationError("bad input")
        assert err.category == "validation"
        assert err.retryable is False

    def test_transient(self) -> None:
        err = TransientError("timeout")
        assert err.category == "transient"
        assert err.retryable is True

    def test_permanent(self) -> None:
        err = PermanentError("gone")
        assert err.category == "permanent"
        assert err.retryable is False

    def test_contract(self) -> None:
        err = ContractError("drift")
        assert err.category == "contract"
        assert err.retryable is False

    def test_retryable_override(self) -> None:
        assert TransientError("x", retryable=False).retryable is False


class TestDomainExceptions:
    CATEGORIES: ClassVar[list[tuple[PipelineError, str, str]]] = [
        (KernelRejectedError("Uses eval()"), "validation", "KERNEL_REJECTED"),
        (KernelNotFoundError("k1"), "validation", "KERNEL_NOT_FOUND"),
        (AuditServiceUnavailableError("timeout"), "transient", "AUDIT_UNAVAILABLE"),
        (PreconditionError("x"), "validation", "PRECONDITION_FAILED"),
        (NoImageryError("x"), "validation", "NO_IMAGERY"),
        (NoRegionError("x"), "validation", "NO_REGION"),
        (KernelNotReadyError("x"), "validation", "KERNEL_NOT_READY"),
        (PermissionDenialError("x"), "permanent", "LOCAL_HANDLE_DENIED"),
        (HandleDeclinedError("x"), "permanent", "LOCAL_HANDLE_DECLINED"),
        (FallbackUnavailableError("x"), "permanent", "FALLBACK_UNAVAILABLE"),
        (PerItemExportError("S2/A", "x"), "transient", "ITEM_EXPORT_FAILED"),
        (TaskStateError("x"), "contract", "TASK_STATE_VIOLATION"),
        (WorkflowDefinitionError("x"), "validation", "WORKFLOW_INVALID"),
        (WorkflowExecutionError("x"), "permanent", "WORKFLOW_NODE_FAILED"),
        (RunNotFoundError("AI-RUN-1"), "validation", "RUN_NOT_FOUND"),
        (ImagerySearchError("x"), "permanent", "IMAGERY_SEARCH_FAILED"),
        (ConfigValidationError("K", 1, "bad"), "permanent", "CONFIG_VALIDATION_FAILED"),
    ]

    @pytest.mark.parametrize(("err", "category", "code"), CATEGORIES)
    def test_category_and_code(self, err: PipelineError, category: str, code: str) -> None:
        assert isinstance(err, PipelineError)
        assert err.category == category
        assert err.code == code
        assert err.to_error_dict()["code"] == code

    def test_kernel_rejected_keeps_reason(self) -> None:
        err = KernelRejectedError("Network access", validation="UNSUPPORTED")
        assert err.reason == "Network access"
        assert err.validation == "UNSUPPORTED"
        assert err.message == "Network access"

    def test_per_item_error_keeps_item(self) -> None:
        err = PerItemExportError("S2/A", "fetch failed")
        assert err.item_id == "S2/A"
        assert err.stage == "dispatch"

    def test_model_validation_error_is_value_error(self) -> None:
        err = ModelValidationError("SearchFilters", "max_cloud_cover_pct", 120, "must be between 0 and 100")
        assert isinstance(err, ValueError)
        assert isinstance(err, PipelineError)
        assert err.message == "SearchFilters.max_cloud_cover_pct=120: must be between 0 and 100"
        assert err.code == "MODEL_VALIDATION_FAILED"


class TestProviderErrors:
    def test_provider_prefix_in_str(self) -> None:
        err = ProviderSearchError("earth_engine", "quota exceeded", retryable=True)
        assert str(err) == "[earth_engine] quota exceeded"
        assert err.category == "transient"
        assert err.code == "PROVIDER_SEARCH_FAILED"

    def test_auth_never_retryable(self) -> None:
        err = ProviderAuthError("earth_engine", "no credentials")
        assert err.retryable is False
        assert err.category == "permanent"

    @pytest.mark.parametrize(
        ("cls", "code"),
        [
            (ProviderError, "PROVIDER_ERROR"),
            (ProviderExportError, "PROVIDER_EXPORT_FAILED"),
            (ProviderDownloadError, "PROVIDER_DOWNLOAD_FAILED"),
        ],
    )
    def test_codes(self, cls: type[ProviderError], code: str) -> None:
        err = cls("p", "m")
        assert err.code == code
        assert err.stage == "provider"

    def test_describe_provider_error(self) -> None:
        payload = describe_provider_error(ProviderDownloadError("artifact_http", "HTTP 500", retryable=True))
        assert payload["provider"] == "artifact_http"
        assert payload["category"] == "transient"
        assert payload["message"] == "HTTP 500"
