"""Pipeline activities.

Each activity performs a single unit of work for the orchestrator:
- search_imagery: Discover Sentinel-2 scenes over a region
- band_transforms: Select the band/index transform for an export
- export_dispatcher: Per-item export to a local or remote destination
"""
