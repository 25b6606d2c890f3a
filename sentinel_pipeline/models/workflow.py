"""Workflow graph node model.

A workflow is an ordered list of ``WorkflowNode`` stages.  The engine
works on its own copies of the nodes, so a caller's node definitions are
never mutated by a run.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field, replace
from typing import Any


class NodeType(enum.Enum):
    INPUT = "INPUT"
    PROCESS = "PROCESS"
    ANALYSIS = "ANALYSIS"
    OUTPUT = "OUTPUT"

    @property
    def computes_metrics(self) -> bool:
        return self in (NodeType.PROCESS, NodeType.ANALYSIS)


class NodeStatus(enum.Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(slots=True)
class WorkflowNode:
    """One stage of a workflow graph.

    Attributes:
        label: Display label, recorded in run snapshots.
        node_type: Stage kind.
        node_id: Unique identifier.
        status: Execution status within the current run.
        linked_kernel_id: Kernel used by Process/Analysis nodes.
        output_path: Destination-path override for Output nodes.
    """

    label: str
    node_type: NodeType
    node_id: str = field(default_factory=lambda: f"node_{uuid.uuid4().hex[:8]}")
    status: NodeStatus = NodeStatus.IDLE
    linked_kernel_id: str | None = None
    output_path: str | None = None

    def idle_copy(self) -> WorkflowNode:
        return replace(self, status=NodeStatus.IDLE)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.node_id,
            "label": self.label,
            "type": self.node_type.value,
            "status": self.status.value,
            "linkedAlgoId": self.linked_kernel_id,
            "customOutputPath": self.output_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowNode:
        node = cls(
            label=str(data["label"]),
            node_type=NodeType(str(data["type"]).upper()),
            linked_kernel_id=data.get("linkedAlgoId") or None,
            output_path=data.get("customOutputPath") or None,
        )
        if data.get("id"):
            node.node_id = str(data["id"])
        return node


def default_workflow() -> list[WorkflowNode]:
    """Return the stock four-stage analysis workflow."""
    return [
        WorkflowNode("Local Imagery Input", NodeType.INPUT, node_id="node_input"),
        WorkflowNode(
            "Vegetation Area Extraction",
            NodeType.PROCESS,
            node_id="node_process",
            linked_kernel_id="veg_mask",
        ),
        WorkflowNode(
            "Histogram Mode Analysis",
            NodeType.ANALYSIS,
            node_id="node_analysis",
            linked_kernel_id="mode_extract",
        ),
        WorkflowNode("Result Output", NodeType.OUTPUT, node_id="node_output"),
    ]
