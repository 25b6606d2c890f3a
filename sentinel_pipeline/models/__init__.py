"""Data models and schemas.

Defines the data structures used throughout the pipeline:
- RegionOfInterest / SearchFilters / ImageryItem: discovery inputs and results
- AlgorithmKernel: Registered processing kernel
- Task: Tracked batch or workflow job
- WorkflowNode: One stage of a workflow graph
- WorkflowRun: Immutable snapshot of a completed workflow run
"""

from sentinel_pipeline.models.imagery import (
    ImageryItem,
    ModelValidationError,
    RegionOfInterest,
    SearchFilters,
)
from sentinel_pipeline.models.kernel import (
    AlgorithmKernel,
    KernelAuthor,
    KernelPersistence,
    ValidationStatus,
)
from sentinel_pipeline.models.snapshot import WorkflowRun
from sentinel_pipeline.models.task import Task, TaskStatus
from sentinel_pipeline.models.workflow import NodeStatus, NodeType, WorkflowNode

__all__ = [
    "AlgorithmKernel",
    "ImageryItem",
    "KernelAuthor",
    "KernelPersistence",
    "ModelValidationError",
    "NodeStatus",
    "NodeType",
    "RegionOfInterest",
    "SearchFilters",
    "Task",
    "TaskStatus",
    "ValidationStatus",
    "WorkflowNode",
    "WorkflowRun",
]
