"""Metric computation for workflow processing stages."""
