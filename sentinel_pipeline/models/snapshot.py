"""Pydantic model for workflow run snapshots.

A ``WorkflowRun`` is the immutable record of one completed workflow
execution, used downstream for reporting.  Field aliases match the
persisted run-history layout:

    {runId, workflowName, timestamp, searchConfig, kernelConfig,
     nodeLabels, trendSeries: [{date, value}]}
"""

from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_FROZEN = ConfigDict(frozen=True, populate_by_name=True)


class TrendPoint(BaseModel):
    """One metric value for one scene."""

    model_config = _FROZEN

    date: dt.date
    value: float
    item_id: str = Field(default="", alias="itemId")


class SearchConfigSummary(BaseModel):
    """Search settings active when the run started."""

    model_config = _FROZEN

    date_range: str = Field(default="", alias="dateRange")
    cloud_cover: float = Field(default=30.0, alias="cloudCover")
    min_coverage: float = Field(default=0.0, alias="minCoverage")
    scene_count: int = Field(default=0, alias="sceneCount")


class KernelConfigSummary(BaseModel):
    """Kernel settings active when the run started."""

    model_config = _FROZEN

    kernel_id: str = Field(default="", alias="kernelId")
    name: str = Field(default="", alias="algoName")
    description: str = Field(default="", alias="algoDesc")


class WorkflowRun(BaseModel):
    """Immutable snapshot of one completed workflow run."""

    model_config = _FROZEN

    run_id: str = Field(alias="runId")
    workflow_name: str = Field(alias="workflowName")
    timestamp: str
    search_config: SearchConfigSummary = Field(alias="searchConfig")
    kernel_config: KernelConfigSummary = Field(alias="kernelConfig")
    node_labels: tuple[str, ...] = Field(alias="nodeLabels")
    trend_series: tuple[TrendPoint, ...] = Field(alias="trendSeries")

    def to_entry(self) -> dict[str, Any]:
        """Serialise to the persisted run-history layout."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_entry(cls, entry: dict[str, Any]) -> WorkflowRun:
        return cls.model_validate(entry)
