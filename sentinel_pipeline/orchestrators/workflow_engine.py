"""Workflow Graph Engine.

Executes an ordered list of ``WorkflowNode`` stages once over the items
that have a local artifact, computes a per-item metric at every
Process/Analysis stage, and records an immutable ``WorkflowRun``
snapshot in the execution history.

Node state machine (per run):

    all nodes IDLE
    node[i]: IDLE -> RUNNING -> COMPLETED | FAILED
    node[i+1] starts only after node[i] is COMPLETED

At every observable instant at most one node is RUNNING, every node
before it is COMPLETED and every node after it is IDLE.  A failed node
ends the run; nothing is recorded.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import TYPE_CHECKING

from sentinel_pipeline.core.constants import DEFAULT_METRIC_KERNEL_ID
from sentinel_pipeline.core.exceptions import (
    NoImageryError,
    WorkflowDefinitionError,
    WorkflowExecutionError,
)
from sentinel_pipeline.models.snapshot import TrendPoint, WorkflowRun
from sentinel_pipeline.models.workflow import NodeStatus, NodeType, WorkflowNode
from sentinel_pipeline.utils.helpers import utc_timestamp

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from sentinel_pipeline.analysis.metrics import MetricComputer
    from sentinel_pipeline.core.telemetry import TelemetryLog
    from sentinel_pipeline.models.imagery import ImageryItem
    from sentinel_pipeline.models.snapshot import KernelConfigSummary, SearchConfigSummary
    from sentinel_pipeline.storage.history import ExecutionHistoryStore

    NodeObserver = Callable[[list[WorkflowNode]], None]
    ProgressCallback = Callable[[int, int], Awaitable[None] | None]

logger = logging.getLogger("sentinel_pipeline.orchestrators.workflow_engine")


def new_run_id() -> str:
    return f"AI-RUN-{uuid.uuid4().hex[:12]}"


class WorkflowEngine:
    """Sequential node-graph executor.

    Args:
        metrics: Metric computer used by Process/Analysis nodes.
        history: Store receiving the snapshot of every completed run.
        telemetry: Operator event stream.
        node_settle_s: Wait applied by Input/Output nodes, in seconds.
        item_settle_s: Wait after each per-item metric, in seconds.
    """

    def __init__(
        self,
        metrics: MetricComputer,
        history: ExecutionHistoryStore,
        telemetry: TelemetryLog,
        *,
        node_settle_s: float = 0.6,
        item_settle_s: float = 0.05,
    ) -> None:
        self._metrics = metrics
        self._history = history
        self._telemetry = telemetry
        self._node_settle_s = node_settle_s
        self._item_settle_s = item_settle_s

    async def run(
        self,
        workflow_name: str,
        nodes: Sequence[WorkflowNode],
        items: Sequence[ImageryItem],
        *,
        search_config: SearchConfigSummary,
        kernel_config: KernelConfigSummary,
        observer: NodeObserver | None = None,
        on_node_done: ProgressCallback | None = None,
        run_id: str | None = None,
    ) -> WorkflowRun:
        """Execute *nodes* over the locally linked *items*.

        Args:
            workflow_name: Display name recorded on the snapshot.
            nodes: Stage definitions, in execution order (not mutated).
            items: Candidate items; only those with ``local_path`` are used.
            search_config: Search summary copied into the snapshot.
            kernel_config: Kernel summary copied into the snapshot.
            observer: Called with a copy of the node list after every
                status change.
            on_node_done: Called with ``(completed, total)`` after each
                node completes; may be a coroutine function.
            run_id: Snapshot id; generated when omitted.

        Raises:
            WorkflowDefinitionError: *nodes* is empty.
            NoImageryError: No item has a local artifact.
            WorkflowExecutionError: A node failed; no snapshot is recorded.
        """
        if not nodes:
            raise WorkflowDefinitionError("A workflow needs at least one node")
        linked = [item for item in items if item.local_path]
        if not linked:
            msg = "No physical imagery linkage: export items to LOCAL before running a workflow"
            self._telemetry.error(msg)
            raise NoImageryError(msg)

        run_id = run_id or new_run_id()
        working = [node.idle_copy() for node in nodes]
        results: dict[str, float] = {}

        def publish() -> None:
            if observer is not None:
                observer([replace(n) for n in working])

        self._telemetry.info("[SYSTEM] Pipeline handshake initiated...", {"runId": run_id})
        self._telemetry.info(f"Physical Imagery Link: SECURED ({len(linked)} scenes)")
        publish()

        for index, node in enumerate(working):
            node.status = NodeStatus.RUNNING
            publish()
            logger.info(
                "Node started | run=%s | node=%s | type=%s | index=%d",
                run_id,
                node.node_id,
                node.node_type.value,
                index,
            )
            try:
                await self._execute(node, linked, results)
            except Exception as exc:
                node.status = NodeStatus.FAILED
                publish()
                error = WorkflowExecutionError(
                    f"Node {node.label!r} failed: {exc}",
                    correlation_id=run_id,
                )
                logger.exception("Node failed | run=%s | node=%s", run_id, node.node_id)
                self._telemetry.error(error.message, error.to_error_dict())
                raise error from exc

            node.status = NodeStatus.COMPLETED
            publish()
            self._telemetry.info(f"WORKFLOW: {node.label} completed", {"runId": run_id})
            if on_node_done is not None:
                maybe = on_node_done(index + 1, len(working))
                if maybe is not None:
                    await maybe

        snapshot = WorkflowRun(
            run_id=run_id,
            workflow_name=workflow_name,
            timestamp=utc_timestamp(),
            search_config=search_config,
            kernel_config=kernel_config,
            node_labels=tuple(n.label for n in working),
            trend_series=_trend_series(linked, results),
        )
        self._history.append(snapshot)
        self._telemetry.success(f"Workflow snapshot created for RunID: {run_id}", {"runId": run_id})
        logger.info(
            "Workflow completed | run=%s | nodes=%d | scenes=%d | points=%d",
            run_id,
            len(working),
            len(linked),
            len(snapshot.trend_series),
        )
        return snapshot

    async def _execute(
        self,
        node: WorkflowNode,
        linked: list[ImageryItem],
        results: dict[str, float],
    ) -> None:
        if node.node_type in (NodeType.INPUT, NodeType.OUTPUT):
            await asyncio.sleep(self._node_settle_s)
            return

        kernel_id = node.linked_kernel_id or DEFAULT_METRIC_KERNEL_ID
        for item in linked:
            # Later processing stages overwrite earlier values for the same item.
            results[item.item_id] = self._metrics.compute(item.item_id, kernel_id)
            await asyncio.sleep(self._item_settle_s)


def _trend_series(linked: list[ImageryItem], results: dict[str, float]) -> tuple[TrendPoint, ...]:
    points = [
        TrendPoint(date=item.acquisition_date, value=results[item.item_id], item_id=item.item_id)
        for item in linked
        if item.item_id in results
    ]
    points.sort(key=lambda p: p.date)
    return tuple(points)
