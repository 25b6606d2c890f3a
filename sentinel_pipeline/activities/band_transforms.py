"""Band/index transforms applied to Sentinel-2 scenes before export.

The transform for a batch is chosen from the kernel id by keyword match,
checked in order:

    ``ndvi`` or ``veg`` -> NDVI   (B8, B4)
    ``ndwi``            -> NDWI   (B3, B8)
    ``evi``             -> EVI    (B8, B4, B2)
    ``ndbi``            -> NDBI   (B11, B8)
    anything else       -> true colour (B4, B3, B2)

The first match wins, so ``veg_evi`` selects NDVI.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class TransformKind(enum.Enum):
    NORMALIZED_DIFFERENCE = "normalized_difference"
    EXPRESSION = "expression"
    VISUAL = "visual"


@dataclass(frozen=True, slots=True)
class BandTransform:
    """One export transform.

    Attributes:
        key: Short identifier recorded on ``ExportSpecification.transform``.
        label: Display name used in log messages.
        bands: Source bands, in the order the transform reads them.
        kind: How the bands are combined.
        expression: Band-math expression for ``EXPRESSION`` transforms;
            band names are referenced by lower-case variable names.
    """

    key: str
    label: str
    bands: tuple[str, ...]
    kind: TransformKind
    expression: str = ""


NDVI = BandTransform("ndvi", "NDVI", ("B8", "B4"), TransformKind.NORMALIZED_DIFFERENCE)
NDWI = BandTransform("ndwi", "NDWI", ("B3", "B8"), TransformKind.NORMALIZED_DIFFERENCE)
NDBI = BandTransform("ndbi", "NDBI", ("B11", "B8"), TransformKind.NORMALIZED_DIFFERENCE)
EVI = BandTransform(
    "evi",
    "EVI",
    ("B8", "B4", "B2"),
    TransformKind.EXPRESSION,
    expression="2.5 * ((b8 - b4) / (b8 + 6 * b4 - 7.5 * b2 + 1))",
)
TRUE_COLOR = BandTransform("true_color", "True colour", ("B4", "B3", "B2"), TransformKind.VISUAL)

_KEYWORD_TRANSFORMS: tuple[tuple[tuple[str, ...], BandTransform], ...] = (
    (("ndvi", "veg"), NDVI),
    (("ndwi",), NDWI),
    (("evi",), EVI),
    (("ndbi",), NDBI),
)

TRANSFORMS: dict[str, BandTransform] = {
    t.key: t for t in (NDVI, NDWI, EVI, NDBI, TRUE_COLOR)
}


def select_transform(kernel_id: str) -> BandTransform:
    """Pick the export transform for *kernel_id* (case-insensitive)."""
    lowered = kernel_id.lower()
    for keywords, transform in _KEYWORD_TRANSFORMS:
        if any(k in lowered for k in keywords):
            return transform
    return TRUE_COLOR


def get_transform(key: str) -> BandTransform:
    """Return the transform registered under *key*.

    Raises:
        KeyError: If *key* is unknown.
    """
    try:
        return TRANSFORMS[key]
    except KeyError:
        msg = f"Unknown band transform: {key!r}. Available: {', '.join(sorted(TRANSFORMS))}"
        raise KeyError(msg) from None
