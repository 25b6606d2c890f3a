"""System-authored kernels shipped with the pipeline.

System kernels are immutable, always ``VALID`` and never written to the
kernel collection.
"""

from __future__ import annotations

from sentinel_pipeline.models.kernel import (
    AlgorithmKernel,
    KernelAuthor,
    KernelPersistence,
    ValidationStatus,
)

_VEG_MASK_CODE = """\
// Algorithm: Vegetation Area Extraction
// Input: NDVI single-band image produced by the export task.
// Logic: Keep pixels where value > 0.4.

var processed = inputImage.updateMask(inputImage.gt(0.4));
return processed;
"""

_MODE_EXTRACT_CODE = """\
// Algorithm: Histogram Mode Extraction
// Input: Grayscale image produced by the export task.
// Logic: Most frequent value (mode) of the non-zero pixels.

var stats = inputImage.updateMask(inputImage.neq(0)).reduceRegion({
  reducer: ee.Reducer.mode(),
  geometry: geometry,
  scale: 10,
  maxPixels: 1e9
});
return stats;
"""

_NDVI_GENERATOR_CODE = """\
// Algorithm: NDVI Generator
// Input: Sentinel-2 surface reflectance scene.

var ndvi = inputImage.normalizedDifference(['B8', 'B4']).rename('NDVI');
return ndvi;
"""

_TRUE_COLOR_CODE = """\
// Algorithm: True Colour Composite
// Input: Sentinel-2 surface reflectance scene.

return inputImage.select(['B4', 'B3', 'B2']);
"""


def _system(kernel_id: str, name: str, description: str, code: str) -> AlgorithmKernel:
    return AlgorithmKernel(
        kernel_id=kernel_id,
        name=name,
        description=description,
        code=code,
        author=KernelAuthor.SYSTEM,
        persistence=KernelPersistence.PERSISTED,
        validation=ValidationStatus.VALID,
    )


BUILTIN_KERNELS: tuple[AlgorithmKernel, ...] = (
    _system(
        "veg_mask",
        "Vegetation Area Extractor",
        "Extracts vegetated pixels (NDVI > 0.4) from the single-band NDVI export.",
        _VEG_MASK_CODE,
    ),
    _system(
        "mode_extract",
        "Hist Mode Extractor",
        "Computes the histogram mode of the non-zero pixels of a single-band image.",
        _MODE_EXTRACT_CODE,
    ),
    _system(
        "ndvi_generator",
        "NDVI Generator",
        "Exports the normalised difference vegetation index (B8, B4).",
        _NDVI_GENERATOR_CODE,
    ),
    _system(
        "true_color",
        "True Colour",
        "Exports the visible-band composite (B4, B3, B2).",
        _TRUE_COLOR_CODE,
    ),
)

BUILTIN_KERNEL_IDS: frozenset[str] = frozenset(k.kernel_id for k in BUILTIN_KERNELS)
