"""Deterministic artifact names for exported imagery.

Every exported artifact is named from three parts:

    {EXPERIMENT}_{YYYYMMDD}_{item-suffix}

- ``EXPERIMENT``: the experiment name, upper-cased, with anything
  outside ``A-Z``, ``0-9``, ``_`` and ``-`` removed.
- ``YYYYMMDD``: the acquisition date with separators dropped.
- ``item-suffix``: the last ``ITEM_ID_SUFFIX_LENGTH`` characters of the
  item id's final path segment.

The same inputs always produce the same name, and names are valid Earth
Engine task descriptions and file names.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from sentinel_pipeline.core.constants import ITEM_ID_SUFFIX_LENGTH
from sentinel_pipeline.models.imagery import parse_date

if TYPE_CHECKING:
    from datetime import date

ARTIFACT_EXTENSION = ".tif"

_TOKEN_RE = re.compile(r"[^A-Za-z0-9_-]+")


def sanitise_token(value: str, *, fallback: str = "UNKNOWN") -> str:
    """Convert *value* to a name-safe token.

    - Spaces become underscores
    - Strips all characters except ``A-Z``, ``a-z``, ``0-9``, ``_``, ``-``
    - Collapses consecutive underscores
    - Falls back to *fallback* if the result is empty
    """
    token = value.strip().replace(" ", "_")
    token = _TOKEN_RE.sub("", token)
    token = re.sub(r"_{2,}", "_", token).strip("_-")
    return token if token else fallback


def item_suffix(item_id: str) -> str:
    """Return the short, name-safe suffix identifying *item_id*."""
    last_segment = item_id.rstrip("/").rsplit("/", 1)[-1]
    return sanitise_token(last_segment[-ITEM_ID_SUFFIX_LENGTH:])


def build_artifact_name(
    experiment_name: str,
    acquisition_date: date | str,
    item_id: str,
) -> str:
    """Build the deterministic artifact name for one item.

    Args:
        experiment_name: Operator-chosen experiment label.
        acquisition_date: Scene date (``date`` or ISO string).
        item_id: Provider asset id.

    Returns:
        e.g. ``"FARM_20240105_9_T50SLH"`` for experiment ``"farm"``, date
        ``2024-01-05`` and item ``".../20240105T030111_20240105T030109_T50SLH"``.
        The kernel is not part of the name.
    """
    experiment = sanitise_token(experiment_name).upper()
    stamp = parse_date(acquisition_date).strftime("%Y%m%d")
    return f"{experiment}_{stamp}_{item_suffix(item_id)}"


def artifact_filename(name: str) -> str:
    """Return the file name used when an artifact is written locally."""
    return name if name.endswith(ARTIFACT_EXTENSION) else f"{name}{ARTIFACT_EXTENSION}"
