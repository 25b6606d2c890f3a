"""Orchestration layer.

- pipeline: Session coordinator for search, batch dispatch and workflow runs
- workflow_engine: Sequential node-graph executor producing run snapshots
"""
