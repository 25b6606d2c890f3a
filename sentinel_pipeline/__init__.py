"""Sentinel imagery pipeline orchestration core.

Registers and audits processing kernels, dispatches batches of
Sentinel-2 scenes to local or remote export destinations, runs node-graph
analysis workflows and keeps a bounded history of their snapshots.
"""

__version__ = "0.1.0"
