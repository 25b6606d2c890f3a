"""Azure Functions entry point: Sentinel Pipeline orchestration core.

This module registers the HTTP triggers using the Python v2 programming
model.

All business logic lives in the sentinel_pipeline package. This file is
purely the wiring layer between HTTP bindings and application code:
bodies are parsed by ``sentinel_pipeline.core.ingress`` and handed to the
objects built by ``sentinel_pipeline.core.service``.
"""

from __future__ import annotations

import functools
import json
import logging

import azure.functions as func

from sentinel_pipeline.core.config import PipelineConfig
from sentinel_pipeline.core.exceptions import PipelineError
from sentinel_pipeline.core.ingress import (
    error_status,
    get_blob_service_client,
    parse_dispatch_request,
    parse_json_body,
    parse_register_request,
    parse_search_request,
    parse_workflow_request,
)
from sentinel_pipeline.core.service import PipelineService, build_service
from sentinel_pipeline.core.telemetry import LogLevel

app = func.FunctionApp(http_auth_level=func.AuthLevel.FUNCTION)

logger = logging.getLogger("sentinel_pipeline.function_app")


@functools.cache
def _service() -> PipelineService:
    """Build the object graph once per worker process."""
    config = PipelineConfig.from_env()
    blob_client = get_blob_service_client() if config.storage_backend == "blob" else None
    return build_service(config, blob_service_client=blob_client)


def _json_response(payload: object, status_code: int = 200) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(payload, default=str),
        status_code=status_code,
        mimetype="application/json",
    )


def _error_response(exc: PipelineError) -> func.HttpResponse:
    status_code = error_status(exc)
    log = logger.warning if status_code < 500 else logger.error
    log("Request failed | status=%d | %s", status_code, exc.to_error_dict())
    return _json_response({"error": exc.to_error_dict()}, status_code)


# ---------------------------------------------------------------------------
# Kernels
# ---------------------------------------------------------------------------


@app.function_name("list_kernels")
@app.route(route="kernels", methods=["GET"])
def list_kernels(req: func.HttpRequest) -> func.HttpResponse:
    """Return the registry's kernels, System kernels first."""
    kernels = _service().registry.list_kernels()
    return _json_response([k.to_dict() for k in kernels])


@app.function_name("register_kernel")
@app.route(route="kernels", methods=["POST"])
async def register_kernel(req: func.HttpRequest) -> func.HttpResponse:
    """Submit a custom kernel to the auditor and register it when accepted.

    Body: ``{"name": "...", "desc": "...", "code": "..."}``.
    """
    try:
        command = parse_register_request(parse_json_body(req.get_body()))
        registry = _service().registry
        kernel_id = await registry.register(command.name, command.description, command.code)
        return _json_response(registry.get(kernel_id).to_dict(), 201)
    except PipelineError as exc:
        return _error_response(exc)


@app.function_name("persist_kernel")
@app.route(route="kernels/{kernel_id}/persist", methods=["POST"])
def persist_kernel(req: func.HttpRequest) -> func.HttpResponse:
    kernel_id = req.route_params.get("kernel_id", "")
    if not kernel_id:
        return func.HttpResponse("Missing kernel_id", status_code=400)
    try:
        changed = _service().registry.persist(kernel_id)
    except PipelineError as exc:
        return _error_response(exc)
    return _json_response({"kernelId": kernel_id, "persisted": changed})


@app.function_name("remove_kernel")
@app.route(route="kernels/{kernel_id}", methods=["DELETE"])
def remove_kernel(req: func.HttpRequest) -> func.HttpResponse:
    kernel_id = req.route_params.get("kernel_id", "")
    if not kernel_id:
        return func.HttpResponse("Missing kernel_id", status_code=400)
    try:
        removed = _service().registry.remove(kernel_id)
    except PipelineError as exc:
        return _error_response(exc)
    if not removed:
        return func.HttpResponse("System kernels cannot be removed", status_code=409)
    return _json_response({"kernelId": kernel_id, "removed": True})


# ---------------------------------------------------------------------------
# Search & dispatch
# ---------------------------------------------------------------------------


@app.function_name("search_imagery")
@app.route(route="search", methods=["POST"])
async def search_imagery(req: func.HttpRequest) -> func.HttpResponse:
    """Search the Sentinel-2 archive over ``roi`` with ``filters``."""
    try:
        command = parse_search_request(parse_json_body(req.get_body()))
        items = await _service().orchestrator.search(command.roi, command.filters)
    except PipelineError as exc:
        return _error_response(exc)
    return _json_response([item.to_dict() for item in items])


@app.function_name("dispatch_batch")
@app.route(route="dispatch", methods=["POST"])
async def dispatch_batch(req: func.HttpRequest) -> func.HttpResponse:
    """Export a batch of items and return the completed task with per-item outcomes.

    The request stays open for the whole batch; per-item failures are
    reported inside the body with status 200.
    """
    try:
        command = parse_dispatch_request(parse_json_body(req.get_body()))
        result = await _service().orchestrator.dispatch_batch(
            command.items,
            command.kernel_id,
            command.destination,
            command.roi,
            experiment_name=command.experiment_name,
        )
    except PipelineError as exc:
        return _error_response(exc)
    return _json_response(result.to_dict())


# ---------------------------------------------------------------------------
# Workflows & history
# ---------------------------------------------------------------------------


@app.function_name("run_workflow")
@app.route(route="workflows/run", methods=["POST"])
async def run_workflow(req: func.HttpRequest) -> func.HttpResponse:
    try:
        command = parse_workflow_request(parse_json_body(req.get_body()))
        snapshot = await _service().orchestrator.run_workflow(
            command.workflow_name,
            command.nodes,
            command.items,
            filters=command.filters,
            kernel_id=command.kernel_id,
        )
    except PipelineError as exc:
        return _error_response(exc)
    return _json_response(snapshot.to_entry(), 201)


@app.function_name("list_history")
@app.route(route="history", methods=["GET"])
def list_history(req: func.HttpRequest) -> func.HttpResponse:
    """Return recorded workflow runs, newest first."""
    return _json_response([run.to_entry() for run in _service().history.list()])


@app.function_name("get_history_run")
@app.route(route="history/{run_id}", methods=["GET"])
def get_history_run(req: func.HttpRequest) -> func.HttpResponse:
    run_id = req.route_params.get("run_id", "")
    try:
        snapshot = _service().history.lookup(run_id)
    except PipelineError as exc:
        return _error_response(exc)
    return _json_response(snapshot.to_entry())


@app.function_name("request_report")
@app.route(route="history/{run_id}/report", methods=["POST"])
async def request_report(req: func.HttpRequest) -> func.HttpResponse:
    """Synthesise a report for a recorded run.  Body: ``{"intent": "..."}``."""
    run_id = req.route_params.get("run_id", "")
    try:
        body = parse_json_body(req.get_body())
        report = await _service().orchestrator.request_report(run_id, str(body.get("intent", "")))
    except PipelineError as exc:
        return _error_response(exc)
    return _json_response({"runId": run_id, "report": report})


# ---------------------------------------------------------------------------
# Tasks & telemetry
# ---------------------------------------------------------------------------


@app.function_name("list_tasks")
@app.route(route="tasks", methods=["GET"])
def list_tasks(req: func.HttpRequest) -> func.HttpResponse:
    return _json_response([task.to_dict() for task in _service().orchestrator.tasks])


@app.function_name("get_task")
@app.route(route="tasks/{task_id}", methods=["GET"])
def get_task(req: func.HttpRequest) -> func.HttpResponse:
    task_id = req.route_params.get("task_id", "")
    try:
        task = _service().orchestrator.get_task(task_id)
    except PipelineError as exc:
        return _error_response(exc)
    return _json_response(task.to_dict())


@app.function_name("telemetry")
@app.route(route="telemetry", methods=["GET"])
def telemetry(req: func.HttpRequest) -> func.HttpResponse:
    """Return retained telemetry entries.

    Query parameters: ``level`` (``INFO``, ``WARN``, ...) and ``tail`` (count).
    """
    log = _service().telemetry
    raw_level = req.params.get("level")
    raw_tail = req.params.get("tail")
    try:
        level = LogLevel(raw_level.upper()) if raw_level else None
        tail = int(raw_tail) if raw_tail else None
    except ValueError:
        return func.HttpResponse("Invalid level or tail parameter", status_code=400)

    entries = log.entries(level=level)
    if tail is not None:
        entries = entries[-tail:] if tail > 0 else []
    return _json_response([entry.to_dict() for entry in entries])
