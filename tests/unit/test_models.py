"""Tests for the domain models.

Covers:
- Task lifecycle transitions and progress rules
- RegionOfInterest construction from coordinates and GeoJSON
- SearchFilters / ImageryItem validation and dict layout
- AlgorithmKernel invariants and persisted entry layout
- WorkflowNode parsing and graph helpers
- WorkflowRun alias layout
"""

from __future__ import annotations

from datetime import date

import pytest

from sentinel_pipeline.core.exceptions import TaskStateError
from sentinel_pipeline.models.imagery import (
    ImageryItem,
    ModelValidationError,
    RegionOfInterest,
    SearchFilters,
    parse_date,
)
from sentinel_pipeline.models.kernel import (
    AlgorithmKernel,
    KernelAuthor,
    KernelPersistence,
    ValidationStatus,
)
from sentinel_pipeline.models.snapshot import WorkflowRun
from sentinel_pipeline.models.task import Task, TaskStatus, new_task_id
from sentinel_pipeline.models.workflow import (
    NodeStatus,
    NodeType,
    WorkflowNode,
    default_workflow,
)

SQUARE = [(115.80, -31.90), (115.82, -31.90), (115.82, -31.88), (115.80, -31.88)]


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------


class TestTask:
    def test_initial_state(self) -> None:
        task = Task("Batch", "LOCAL")
        assert task.status is TaskStatus.PENDING
        assert task.progress == 0.0
        assert task.task_id.startswith("GE-")

    def test_task_id_prefix(self) -> None:
        assert new_task_id("AI").startswith("AI-")
        assert new_task_id() != new_task_id()

    def test_happy_path(self) -> None:
        task = Task("Batch", "LOCAL")
        task.start()
        assert task.advance(1, 3) == pytest.approx(33.333, rel=1e-3)
        task.advance(3, 3)
        task.complete()
        assert task.status is TaskStatus.COMPLETED
        assert task.progress == 100.0
        assert task.started_at is not None
        assert task.finished_at is not None

    def test_progress_never_decreases(self) -> None:
        task = Task("Batch", "LOCAL")
        task.start()
        task.advance(2, 3)
        with pytest.raises(TaskStateError, match="decrease"):
            task.advance(1, 3)

    @pytest.mark.parametrize(("completed", "total"), [(4, 3), (-1, 3), (0, 0)])
    def test_invalid_ratio(self, completed: int, total: int) -> None:
        task = Task("Batch", "LOCAL")
        task.start()
        with pytest.raises(TaskStateError):
            task.advance(completed, total)

    def test_progress_frozen_when_not_running(self) -> None:
        task = Task("Batch", "LOCAL")
        with pytest.raises(TaskStateError):
            task.advance(1, 2)

    def test_pending_can_fail(self) -> None:
        task = Task("Batch", "LOCAL")
        task.fail("declined")
        assert task.status is TaskStatus.FAILED
        assert task.error == "declined"

    def test_terminal_states_are_final(self) -> None:
        task = Task("Batch", "LOCAL")
        task.start()
        task.complete()
        with pytest.raises(TaskStateError):
            task.fail("late")
        with pytest.raises(TaskStateError):
            task.start()
        assert task.status is TaskStatus.COMPLETED

    def test_cannot_complete_pending(self) -> None:
        with pytest.raises(TaskStateError) as exc_info:
            Task("Batch", "LOCAL").complete()
        assert exc_info.value.category == "contract"

    def test_to_dict(self) -> None:
        task = Task("Batch", "DRIVE", task_id="GE-1")
        task.start()
        task.advance(1, 3)
        payload = task.to_dict()
        assert payload["id"] == "GE-1"
        assert payload["type"] == "DRIVE"
        assert payload["status"] == "RUNNING"
        assert payload["progress"] == 33.33
        assert payload["finishedAt"] is None


# ---------------------------------------------------------------------------
# Region / filters / items
# ---------------------------------------------------------------------------


class TestRegionOfInterest:
    def test_closes_ring(self) -> None:
        roi = RegionOfInterest.from_coordinates(SQUARE)
        assert len(roi.exterior) == 5
        assert roi.exterior[0] == roi.exterior[-1]

    def test_bbox(self) -> None:
        roi = RegionOfInterest.from_coordinates(SQUARE)
        assert roi.bbox == (115.80, -31.90, 115.82, -31.88)

    def test_from_geojson_feature(self) -> None:
        feature = {"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [[list(c) for c in SQUARE]]}}
        assert RegionOfInterest.from_geojson(feature) == RegionOfInterest.from_coordinates(SQUARE)

    def test_geojson_round_trip(self) -> None:
        roi = RegionOfInterest.from_coordinates(SQUARE)
        assert RegionOfInterest.from_geojson(roi.to_geojson()) == roi

    def test_rejects_non_polygon(self) -> None:
        with pytest.raises(ModelValidationError, match="Polygon"):
            RegionOfInterest.from_geojson({"type": "Point", "coordinates": [115.8, -31.9]})

    def test_rejects_too_few_points(self) -> None:
        with pytest.raises(ModelValidationError, match="at least 4"):
            RegionOfInterest.from_coordinates([(0, 0), (1, 1)])

    def test_rejects_out_of_range(self) -> None:
        with pytest.raises(ModelValidationError, match="lat"):
            RegionOfInterest.from_coordinates([(0, 0), (1, 95), (1, 0)])


class TestSearchFilters:
    def test_defaults(self) -> None:
        filters = SearchFilters()
        assert filters.max_cloud_cover_pct == 30.0
        assert filters.date_range_label == "* to *"

    def test_rejects_inverted_range(self) -> None:
        with pytest.raises(ModelValidationError, match="date_end"):
            SearchFilters(date_start=date(2024, 2, 1), date_end=date(2024, 1, 1))

    def test_rejects_cloud_out_of_range(self) -> None:
        with pytest.raises(ModelValidationError):
            SearchFilters(max_cloud_cover_pct=101)


class TestImageryItem:
    def test_dict_layout(self) -> None:
        item = ImageryItem("S2/A", date(2024, 1, 5), cloud_cover_pct=4.2, tile_id="50HMK")
        payload = item.to_dict()
        assert payload["id"] == "S2/A"
        assert payload["date"] == "2024-01-05"
        assert payload["cloudCover"] == 4.2
        assert payload["localPath"] is None

    def test_from_dict(self) -> None:
        item = ImageryItem.from_dict(
            {"id": "S2/A", "date": "2024-01-05T03:01:11Z", "cloudCover": "4.2", "localPath": "/x.tif"}
        )
        assert item.acquisition_date == date(2024, 1, 5)
        assert item.cloud_cover_pct == 4.2
        assert item.local_path == "/x.tif"
        assert item.tile_id == "N/A"

    def test_from_dict_missing_id(self) -> None:
        with pytest.raises(KeyError):
            ImageryItem.from_dict({"date": "2024-01-05"})

    def test_blank_id_rejected(self) -> None:
        with pytest.raises(ModelValidationError):
            ImageryItem(" ", date(2024, 1, 5))

    def test_parse_date(self) -> None:
        assert parse_date("2024-01-05") == date(2024, 1, 5)
        assert parse_date("2024-01-05T23:59:59+00:00") == date(2024, 1, 5)


# ---------------------------------------------------------------------------
# Kernels
# ---------------------------------------------------------------------------


class TestAlgorithmKernel:
    def test_user_defaults(self) -> None:
        kernel = AlgorithmKernel("wf_custom_1", "Mine", "", "code")
        assert kernel.author is KernelAuthor.USER
        assert kernel.persistence is KernelPersistence.EPHEMERAL
        assert kernel.validation is ValidationStatus.TESTING
        assert kernel.is_valid is False

    def test_system_kernels_must_be_valid(self) -> None:
        with pytest.raises(ModelValidationError, match="system kernels"):
            AlgorithmKernel("k", "K", "", "", author=KernelAuthor.SYSTEM)

    def test_persisted_copy(self) -> None:
        kernel = AlgorithmKernel("wf_custom_1", "Mine", "", "code", validation=ValidationStatus.VALID)
        persisted = kernel.persisted()
        assert persisted.is_persistent is True
        assert kernel.is_persistent is False

    def test_entry_round_trip(self) -> None:
        kernel = AlgorithmKernel(
            "wf_custom_1",
            "Mine",
            "desc",
            "code",
            persistence=KernelPersistence.PERSISTED,
            validation=ValidationStatus.VALID,
        )
        entry = kernel.to_entry()
        assert entry == {
            "id": "wf_custom_1",
            "name": "Mine",
            "desc": "desc",
            "code": "code",
            "author": "User",
            "isPersistent": True,
        }
        assert AlgorithmKernel.from_entry(dict(entry)) == kernel


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


class TestWorkflowNode:
    def test_from_dict(self) -> None:
        node = WorkflowNode.from_dict(
            {"id": "n1", "label": "Mask", "type": "process", "linkedAlgoId": "veg_mask"}
        )
        assert node.node_id == "n1"
        assert node.node_type is NodeType.PROCESS
        assert node.linked_kernel_id == "veg_mask"
        assert node.status is NodeStatus.IDLE

    def test_unknown_type(self) -> None:
        with pytest.raises(ValueError):
            WorkflowNode.from_dict({"label": "X", "type": "merge"})

    def test_default_workflow(self) -> None:
        nodes = default_workflow()
        assert [n.node_type for n in nodes] == [
            NodeType.INPUT,
            NodeType.PROCESS,
            NodeType.ANALYSIS,
            NodeType.OUTPUT,
        ]
        assert [n.linked_kernel_id for n in nodes] == [None, "veg_mask", "mode_extract", None]

    def test_computes_metrics(self) -> None:
        assert NodeType.PROCESS.computes_metrics
        assert NodeType.ANALYSIS.computes_metrics
        assert not NodeType.INPUT.computes_metrics


class TestWorkflowRun:
    def test_alias_layout(self) -> None:
        run = WorkflowRun.model_validate(
            {
                "runId": "AI-RUN-1",
                "workflowName": "wf",
                "timestamp": "2024-03-01T00:00:00+00:00",
                "searchConfig": {"dateRange": "a to b", "cloudCover": 20, "sceneCount": 2},
                "kernelConfig": {"kernelId": "veg_mask", "algoName": "Veg"},
                "nodeLabels": ["Input", "Output"],
                "trendSeries": [{"date": "2024-01-05", "value": 0.5}],
            }
        )
        assert run.search_config.cloud_cover == 20.0
        assert run.trend_series[0].date == date(2024, 1, 5)
        assert run.to_entry()["kernelConfig"]["algoName"] == "Veg"

    def test_frozen(self) -> None:
        run = WorkflowRun.model_validate(
            {
                "runId": "AI-RUN-1",
                "workflowName": "wf",
                "timestamp": "t",
                "searchConfig": {},
                "kernelConfig": {},
                "nodeLabels": [],
                "trendSeries": [],
            }
        )
        with pytest.raises(ValueError):
            run.workflow_name = "other"  # type: ignore[misc]
