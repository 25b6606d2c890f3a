"""Thin ingress boundary helpers for the HTTP entry point.

Centralises transport concerns so that ``function_app.py`` contains
only route bindings and handoff:

- **parse_json_body**: normalises a raw request body into a dict.
- **parse_*_request**: validate route payloads into typed commands.
- **error_status**: maps the exception taxonomy onto HTTP status codes.
- **get_blob_service_client**: creates an ``azure.storage.blob`` client
  from the ``AzureWebJobsStorage`` environment variable.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sentinel_pipeline.activities.search_imagery import build_filters
from sentinel_pipeline.core.constants import Destination
from sentinel_pipeline.core.exceptions import (
    ContractError,
    KernelNotFoundError,
    PipelineError,
    RunNotFoundError,
)
from sentinel_pipeline.models.imagery import ImageryItem, RegionOfInterest, SearchFilters
from sentinel_pipeline.models.workflow import WorkflowNode, default_workflow

if TYPE_CHECKING:
    from azure.storage.blob import BlobServiceClient

logger = logging.getLogger("sentinel_pipeline.core.ingress")


# ---------------------------------------------------------------------------
# Typed commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RegisterKernelCommand:
    name: str
    description: str
    code: str


@dataclass(frozen=True, slots=True)
class SearchCommand:
    roi: RegionOfInterest | None
    filters: SearchFilters


@dataclass(frozen=True, slots=True)
class DispatchCommand:
    items: list[ImageryItem]
    kernel_id: str
    destination: Destination
    roi: RegionOfInterest | None
    experiment_name: str | None


@dataclass(frozen=True, slots=True)
class WorkflowCommand:
    workflow_name: str
    nodes: list[WorkflowNode]
    items: list[ImageryItem]
    filters: SearchFilters | None
    kernel_id: str


# ---------------------------------------------------------------------------
# Body parsing
# ---------------------------------------------------------------------------


def parse_json_body(raw: bytes | str | dict[str, Any] | object) -> dict[str, Any]:
    """Normalise a request body to a plain dict.

    Raises:
        ContractError: If *raw* is not a JSON object.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8") if raw else "{}"
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw or "{}")
        except (json.JSONDecodeError, ValueError) as exc:
            msg = f"Request body is not valid JSON: {exc}"
            raise ContractError(msg, stage="ingress", code="INVALID_JSON") from exc
        if not isinstance(parsed, dict):
            msg = f"Request body must be a JSON object, got {type(parsed).__name__}"
            raise ContractError(msg, stage="ingress", code="INVALID_INPUT_TYPE")
        return parsed
    if isinstance(raw, dict):
        return raw
    msg = f"Unexpected request body type: {type(raw).__name__}"
    raise ContractError(msg, stage="ingress", code="INVALID_INPUT_TYPE")


def _require_str(body: dict[str, Any], key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str) or not value.strip():
        msg = f"Field {key!r} is required and must be a non-empty string"
        raise ContractError(msg, stage="ingress", code="MISSING_FIELD")
    return value


def _parse_roi(body: dict[str, Any]) -> RegionOfInterest | None:
    raw = body.get("roi")
    if raw is None:
        return None
    try:
        if isinstance(raw, dict):
            return RegionOfInterest.from_geojson(raw)
        return RegionOfInterest.from_coordinates(raw)
    except (TypeError, IndexError, ValueError) as exc:
        msg = f"Invalid roi: {exc}"
        raise ContractError(msg, stage="ingress", code="INVALID_ROI") from exc


def _parse_items(body: dict[str, Any]) -> list[ImageryItem]:
    raw = body.get("items") or []
    if not isinstance(raw, list):
        raise ContractError("Field 'items' must be a list", stage="ingress", code="INVALID_ITEMS")
    try:
        return [ImageryItem.from_dict(entry) for entry in raw]
    except (TypeError, KeyError, ValueError) as exc:
        msg = f"Invalid imagery item: {exc}"
        raise ContractError(msg, stage="ingress", code="INVALID_ITEMS") from exc


def _parse_filters(body: dict[str, Any]) -> SearchFilters | None:
    raw = body.get("filters")
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ContractError("Field 'filters' must be an object", stage="ingress", code="INVALID_FILTERS")
    try:
        return build_filters(raw)
    except (TypeError, ValueError) as exc:
        msg = f"Invalid filters: {exc}"
        raise ContractError(msg, stage="ingress", code="INVALID_FILTERS") from exc


def parse_register_request(body: dict[str, Any]) -> RegisterKernelCommand:
    return RegisterKernelCommand(
        name=_require_str(body, "name"),
        description=str(body.get("desc", "")),
        code=_require_str(body, "code"),
    )


def parse_search_request(body: dict[str, Any]) -> SearchCommand:
    return SearchCommand(roi=_parse_roi(body), filters=_parse_filters(body) or SearchFilters())


def parse_dispatch_request(body: dict[str, Any]) -> DispatchCommand:
    """Validate a dispatch payload.

    Expected shape::

        {"items": [...], "kernelId": "ndvi_generator", "destination": "DRIVE",
         "roi": {...GeoJSON...}, "experimentName": "FARM"}
    """
    raw_destination = str(body.get("destination", Destination.LOCAL.value)).upper()
    try:
        destination = Destination(raw_destination)
    except ValueError as exc:
        allowed = ", ".join(d.value for d in Destination)
        msg = f"Unknown destination {raw_destination!r}; expected one of {allowed}"
        raise ContractError(msg, stage="ingress", code="INVALID_DESTINATION") from exc
    return DispatchCommand(
        items=_parse_items(body),
        kernel_id=_require_str(body, "kernelId"),
        destination=destination,
        roi=_parse_roi(body),
        experiment_name=body.get("experimentName") or None,
    )


def parse_workflow_request(body: dict[str, Any]) -> WorkflowCommand:
    """Validate a workflow-run payload; omitted ``nodes`` uses the stock workflow."""
    raw_nodes = body.get("nodes")
    try:
        nodes = (
            [WorkflowNode.from_dict(n) for n in raw_nodes]
            if raw_nodes is not None
            else default_workflow()
        )
    except (TypeError, KeyError, ValueError) as exc:
        msg = f"Invalid workflow node: {exc}"
        raise ContractError(msg, stage="ingress", code="INVALID_NODES") from exc
    return WorkflowCommand(
        workflow_name=str(body.get("workflowName") or "Sentinel Workflow"),
        nodes=nodes,
        items=_parse_items(body),
        filters=_parse_filters(body),
        kernel_id=str(body.get("kernelId", "")),
    )


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def error_status(exc: PipelineError) -> int:
    """Return the HTTP status code for a pipeline exception."""
    if isinstance(exc, KernelNotFoundError | RunNotFoundError) or exc.code == "TASK_NOT_FOUND":
        return 404
    # ModelValidationError is also a ValueError but not a ValidationError.
    if exc.category in ("validation", "contract") or isinstance(exc, ValueError):
        return 400
    if exc.category == "transient":
        return 503
    return 409


# ---------------------------------------------------------------------------
# Blob service client factory
# ---------------------------------------------------------------------------


def get_blob_service_client() -> BlobServiceClient:
    """Create a ``BlobServiceClient`` from the ``AzureWebJobsStorage`` env var.

    Raises:
        ContractError: If the environment variable is not set.
    """
    from azure.storage.blob import BlobServiceClient

    connection_string = os.environ.get("AzureWebJobsStorage", "")  # noqa: SIM112
    if not connection_string:
        msg = "AzureWebJobsStorage environment variable is not set"
        raise ContractError(msg, stage="ingress", code="MISSING_CONNECTION_STRING")

    return BlobServiceClient.from_connection_string(connection_string)
