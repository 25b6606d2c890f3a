"""Execution History Store.

A bounded, newest-first log of ``WorkflowRun`` snapshots.  The whole
history is kept as one document (``HISTORY_DOCUMENT_KEY``) in the
history collection and rewritten on every change; at most
``HISTORY_CAPACITY`` snapshots are retained, oldest evicted first.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from sentinel_pipeline.core.constants import HISTORY_CAPACITY, HISTORY_DOCUMENT_KEY
from sentinel_pipeline.core.exceptions import RunNotFoundError
from sentinel_pipeline.models.snapshot import WorkflowRun

if TYPE_CHECKING:
    from sentinel_pipeline.storage.collections import KeyValueCollection

logger = logging.getLogger("sentinel_pipeline.storage.history")


class ExecutionHistoryStore:
    def __init__(
        self,
        collection: KeyValueCollection,
        *,
        capacity: int = HISTORY_CAPACITY,
    ) -> None:
        if capacity < 1:
            msg = f"History capacity must be >= 1, got {capacity}"
            raise ValueError(msg)
        self._collection = collection
        self._capacity = capacity
        self._runs: list[WorkflowRun] = self._load()

    def _load(self) -> list[WorkflowRun]:
        raw = self._collection.get(HISTORY_DOCUMENT_KEY) or []
        runs: list[WorkflowRun] = []
        for entry in raw:
            try:
                runs.append(WorkflowRun.from_entry(entry))
            except PydanticValidationError:
                logger.warning(
                    "Skipping unreadable history entry | collection=%s | run=%s",
                    self._collection.name,
                    entry.get("runId") if isinstance(entry, dict) else None,
                )
        if runs:
            logger.info("History reloaded | collection=%s | runs=%d", self._collection.name, len(runs))
        return runs[: self._capacity]

    def _flush(self) -> None:
        self._collection.put(HISTORY_DOCUMENT_KEY, [run.to_entry() for run in self._runs])

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, snapshot: WorkflowRun) -> None:
        """Insert *snapshot* at the front, evicting the oldest beyond capacity."""
        self._runs.insert(0, snapshot)
        evicted = self._runs[self._capacity :]
        del self._runs[self._capacity :]
        self._flush()
        for run in evicted:
            logger.info("History eviction | run=%s | capacity=%d", run.run_id, self._capacity)

    def list(self) -> list[WorkflowRun]:
        """Return snapshots newest-first."""
        return list(self._runs)

    def lookup(self, run_id: str) -> WorkflowRun:
        for run in self._runs:
            if run.run_id == run_id:
                return run
        raise RunNotFoundError(run_id)

    def clear(self) -> None:
        self._runs.clear()
        self._flush()

    def __len__(self) -> int:
        return len(self._runs)
