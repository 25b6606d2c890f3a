"""Pipeline Orchestrator.

Coordinates one operator session:

1. **Search**: delegate discovery to the imagery provider.
2. **Batch dispatch**: validate preconditions, create a ``Task``, prepare
   the destination once, then export items one at a time.  A failed item
   never stops the batch; progress advances after every attempt.
3. **Workflow run**: wrap the Workflow Graph Engine in its own ``Task``.
4. **Reporting**: hand a recorded snapshot to the report service.

Only this class creates or mutates ``Task`` objects.

Failure contract for ``dispatch_batch``:
    - Precondition failures raise before any Task exists.
    - An operator decline or an unavailable fallback fails the Task and
      re-raises; no item is attempted.
    - Per-item failures are recorded on ``BatchResult.outcomes``; the Task
      still completes (``BatchResult.all_failed`` flags a batch in which
      no item succeeded).
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sentinel_pipeline.activities.search_imagery import search_imagery
from sentinel_pipeline.core.constants import Destination
from sentinel_pipeline.core.exceptions import (
    KernelNotFoundError,
    NoImageryError,
    NoRegionError,
    PipelineError,
    PreconditionError,
    ValidationError,
)
from sentinel_pipeline.models.results import BatchResult
from sentinel_pipeline.models.snapshot import KernelConfigSummary, SearchConfigSummary
from sentinel_pipeline.models.task import Task, new_task_id
from sentinel_pipeline.utils.artifact_names import build_artifact_name

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sentinel_pipeline.activities.export_dispatcher import ExportDispatcher
    from sentinel_pipeline.core.telemetry import TelemetryLog
    from sentinel_pipeline.kernels.registry import KernelRegistry
    from sentinel_pipeline.models.imagery import ImageryItem, RegionOfInterest, SearchFilters
    from sentinel_pipeline.models.kernel import AlgorithmKernel
    from sentinel_pipeline.models.results import ItemOutcome
    from sentinel_pipeline.models.snapshot import WorkflowRun
    from sentinel_pipeline.models.workflow import WorkflowNode
    from sentinel_pipeline.orchestrators.workflow_engine import NodeObserver, WorkflowEngine
    from sentinel_pipeline.providers.base import ImageryDiscoveryService, ReportSynthesisService
    from sentinel_pipeline.storage.history import ExecutionHistoryStore

logger = logging.getLogger("sentinel_pipeline.orchestrators.pipeline")

WORKFLOW_TASK_TYPE = "WORKFLOW"


class PipelineOrchestrator:
    """Session-level coordinator for search, dispatch and workflow runs.

    Args:
        registry: Kernel registry (dispatch kernels must be ``VALID``).
        dispatcher: Export strategy factory.
        engine: Workflow Graph Engine.
        history: Execution history store (report lookups).
        telemetry: Operator event stream.
        discovery: Imagery discovery service; ``None`` disables ``search``.
        reports: Report synthesis service; ``None`` disables reporting.
        experiment_name: Default artifact-name prefix.
        inter_item_delay_s: Pause between per-item dispatcher calls.
    """

    def __init__(
        self,
        *,
        registry: KernelRegistry,
        dispatcher: ExportDispatcher,
        engine: WorkflowEngine,
        history: ExecutionHistoryStore,
        telemetry: TelemetryLog,
        discovery: ImageryDiscoveryService | None = None,
        reports: ReportSynthesisService | None = None,
        experiment_name: str = "SENTINEL",
        inter_item_delay_s: float = 1.0,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._engine = engine
        self._history = history
        self._telemetry = telemetry
        self._discovery = discovery
        self._reports = reports
        self._experiment_name = experiment_name
        self._inter_item_delay_s = inter_item_delay_s
        self._tasks: list[Task] = []

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @property
    def tasks(self) -> list[Task]:
        """All tasks of this session, newest first."""
        return list(reversed(self._tasks))

    def get_task(self, task_id: str) -> Task:
        for task in self._tasks:
            if task.task_id == task_id:
                return task
        msg = f"Task not found: {task_id!r}"
        raise ValidationError(msg, stage="task", code="TASK_NOT_FOUND")

    def _new_task(self, name: str, destination: str, *, prefix: str = "GE") -> Task:
        task = Task(name=name, destination=destination, task_id=new_task_id(prefix))
        self._tasks.append(task)
        return task

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        roi: RegionOfInterest | None,
        filters: SearchFilters,
    ) -> list[ImageryItem]:
        """Search for imagery over *roi*.

        Raises:
            NoRegionError: *roi* is missing.
            ImagerySearchError: The provider search failed.
        """
        if self._discovery is None:
            msg = "No imagery discovery service is configured"
            raise PipelineError(msg, stage="search", code="DISCOVERY_UNAVAILABLE")
        try:
            items = await search_imagery(self._discovery, roi, filters)
        except PipelineError as exc:
            self._telemetry.error(f"Search failed: {exc.message}", exc.to_error_dict())
            raise
        self._telemetry.success(
            f"Search complete: {len(items)} scenes ({filters.date_range_label})",
            {"count": len(items)},
        )
        return items

    # ------------------------------------------------------------------
    # Batch dispatch
    # ------------------------------------------------------------------

    def _check_preconditions(
        self,
        items: Sequence[ImageryItem],
        kernel_id: str,
        roi: RegionOfInterest | None,
    ) -> tuple[AlgorithmKernel, RegionOfInterest]:
        try:
            if not items:
                raise NoImageryError("No imagery selected for dispatch")
            if roi is None:
                raise NoRegionError("No region of interest defined")
            return self._registry.select(kernel_id), roi
        except (PreconditionError, KernelNotFoundError) as exc:
            logger.warning("Dispatch rejected | %s", exc.to_error_dict())
            self._telemetry.error(f"Dispatch rejected: {exc.message}", exc.to_error_dict())
            raise

    async def dispatch_batch(
        self,
        items: Sequence[ImageryItem],
        kernel_id: str,
        destination: Destination,
        roi: RegionOfInterest | None,
        *,
        experiment_name: str | None = None,
    ) -> BatchResult:
        """Export *items* one at a time under *kernel_id* to *destination*.

        Raises:
            NoImageryError: *items* is empty.
            NoRegionError: *roi* is missing.
            KernelNotFoundError: *kernel_id* is unknown.
            KernelNotReadyError: The kernel is not ``VALID``.
            HandleDeclinedError: The operator declined local write access.
            FallbackUnavailableError: Local write was refused and no
                download fallback exists.
        """
        kernel, region = self._check_preconditions(items, kernel_id, roi)
        experiment = experiment_name or self._experiment_name

        task = self._new_task(f"{experiment} | {kernel.name}", destination.value)
        total = len(items)
        task.start()
        logger.info(
            "Batch started | task=%s | kernel=%s | destination=%s | items=%d",
            task.task_id,
            kernel.kernel_id,
            destination.value,
            total,
        )
        self._telemetry.info(
            f"Task {task.task_id} dispatched: {total} scenes via [{kernel.name}] to {destination.value}",
            {"taskId": task.task_id},
        )

        strategy = self._dispatcher.open_batch(destination, kernel, region)
        try:
            await strategy.prepare()
        except Exception as exc:
            message = exc.message if isinstance(exc, PipelineError) else str(exc)
            task.fail(message)
            logger.exception("Batch aborted before first item | task=%s", task.task_id)
            payload = exc.to_error_dict() if isinstance(exc, PipelineError) else {"error": repr(exc)}
            self._telemetry.error(f"Task {task.task_id} failed: {message}", payload)
            raise

        outcomes: list[ItemOutcome] = []
        for index, item in enumerate(items):
            if index > 0 and self._inter_item_delay_s > 0:
                await asyncio.sleep(self._inter_item_delay_s)

            artifact_name = build_artifact_name(experiment, item.acquisition_date, item.item_id)
            self._telemetry.info(
                f"[{index + 1}/{total}] Exporting {artifact_name}",
                {"taskId": task.task_id, "itemId": item.item_id},
            )
            outcome = await strategy.export_item(item, artifact_name)
            outcomes.append(outcome)
            task.advance(index + 1, total)

            payload = {"taskId": task.task_id, "itemId": item.item_id, "viaFallback": outcome.via_fallback}
            route = " via download fallback" if outcome.via_fallback else ""
            if outcome.ok:
                target = outcome.local_path or outcome.external_task_id or ""
                self._telemetry.success(f"[{index + 1}/{total}] {artifact_name} exported{route}: {target}", payload)
            else:
                self._telemetry.error(f"[{index + 1}/{total}] {artifact_name} failed{route}: {outcome.error}", payload)

        task.complete()
        result = BatchResult(task=task, outcomes=outcomes)
        logger.info(
            "Batch completed | task=%s | succeeded=%d | failed=%d",
            task.task_id,
            result.success_count,
            result.failure_count,
        )
        if result.all_failed:
            self._telemetry.error(
                f"Task {task.task_id} completed but every item failed ({total}/{total})",
                {"taskId": task.task_id, "failedItems": result.failed_items},
            )
        else:
            self._telemetry.success(
                f"Task {task.task_id} completed: {result.success_count}/{total} exported",
                {"taskId": task.task_id, "failed": result.failure_count},
            )
        return result

    # ------------------------------------------------------------------
    # Workflow runs
    # ------------------------------------------------------------------

    async def run_workflow(
        self,
        workflow_name: str,
        nodes: Sequence[WorkflowNode],
        items: Sequence[ImageryItem],
        *,
        filters: SearchFilters | None = None,
        kernel_id: str = "",
        observer: NodeObserver | None = None,
    ) -> WorkflowRun:
        """Run a workflow graph under its own ``Task``.

        Task progress is ``nodes completed / node count * 100``.

        Raises:
            WorkflowDefinitionError / NoImageryError: before a Task exists.
            WorkflowExecutionError: A node failed; the Task is failed.
        """
        linked = [item for item in items if item.local_path]
        search_config = SearchConfigSummary(
            date_range=_date_range(linked, filters),
            cloud_cover=filters.max_cloud_cover_pct if filters else 30.0,
            min_coverage=filters.min_coverage_pct if filters else 0.0,
            scene_count=len(linked),
        )
        kernel_config = self._kernel_summary(kernel_id)

        # Validation errors surface from the engine before the task exists.
        if not nodes or not linked:
            return await self._engine.run(
                workflow_name,
                nodes,
                items,
                search_config=search_config,
                kernel_config=kernel_config,
                observer=observer,
            )

        task = self._new_task(workflow_name, WORKFLOW_TASK_TYPE, prefix="AI")
        task.start()

        def on_node_done(completed: int, total: int) -> None:
            task.advance(completed, total)

        try:
            snapshot = await self._engine.run(
                workflow_name,
                nodes,
                items,
                search_config=search_config,
                kernel_config=kernel_config,
                observer=observer,
                on_node_done=on_node_done,
                run_id=task.task_id.replace("AI-", "AI-RUN-", 1),
            )
        except PipelineError as exc:
            task.fail(exc.message)
            raise
        task.complete()
        return snapshot

    def _kernel_summary(self, kernel_id: str) -> KernelConfigSummary:
        if not kernel_id:
            return KernelConfigSummary()
        kernel = self._registry.get(kernel_id)
        return KernelConfigSummary(
            kernel_id=kernel.kernel_id,
            name=kernel.name,
            description=kernel.description,
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def request_report(self, run_id: str, intent: str) -> str:
        """Synthesise a report for a recorded run.

        Raises:
            RunNotFoundError: *run_id* is not in the history store.
        """
        snapshot = self._history.lookup(run_id)
        if self._reports is None:
            msg = "No report synthesis service is configured"
            raise PipelineError(msg, stage="report", code="REPORTS_UNAVAILABLE")
        self._telemetry.info(f"Report requested for {run_id}", {"runId": run_id})
        report = await self._reports.synthesize(snapshot, intent)
        self._telemetry.success(f"Report ready for {run_id}", {"runId": run_id, "chars": len(report)})
        return report


def _date_range(items: Sequence[ImageryItem], filters: SearchFilters | None) -> str:
    if filters is not None and (filters.date_start or filters.date_end):
        return filters.date_range_label
    if not items:
        return ""
    dates = sorted(item.acquisition_date for item in items)
    return f"{dates[0].isoformat()} to {dates[-1].isoformat()}"
