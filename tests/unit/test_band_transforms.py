"""Tests for export band transform selection."""

from __future__ import annotations

import pytest

from sentinel_pipeline.activities.band_transforms import (
    EVI,
    NDBI,
    NDVI,
    NDWI,
    TRANSFORMS,
    TRUE_COLOR,
    BandTransform,
    TransformKind,
    get_transform,
    select_transform,
)
from sentinel_pipeline.kernels.builtin import BUILTIN_KERNELS


class TestSelectTransform:
    @pytest.mark.parametrize(
        ("kernel_id", "expected"),
        [
            ("ndvi_generator", NDVI),
            ("veg_mask", NDVI),
            ("NDVI_Custom", NDVI),
            ("ndwi_water", NDWI),
            ("evi_series", EVI),
            ("urban_ndbi", NDBI),
            ("mode_extract", TRUE_COLOR),
            ("wf_custom_1a2b3c4d", TRUE_COLOR),
        ],
    )
    def test_keyword_match(self, kernel_id: str, expected: BandTransform) -> None:
        assert select_transform(kernel_id) is expected

    def test_first_match_wins(self) -> None:
        assert select_transform("veg_evi") is NDVI

    def test_builtin_kernels(self) -> None:
        selected = {k.kernel_id: select_transform(k.kernel_id).key for k in BUILTIN_KERNELS}
        assert selected == {
            "veg_mask": "ndvi",
            "mode_extract": "true_color",
            "ndvi_generator": "ndvi",
            "true_color": "true_color",
        }


class TestTransformDefinitions:
    def test_band_order(self) -> None:
        assert NDVI.bands == ("B8", "B4")
        assert NDWI.bands == ("B3", "B8")
        assert EVI.bands == ("B8", "B4", "B2")
        assert NDBI.bands == ("B11", "B8")
        assert TRUE_COLOR.bands == ("B4", "B3", "B2")

    def test_kinds(self) -> None:
        assert NDVI.kind is TransformKind.NORMALIZED_DIFFERENCE
        assert EVI.kind is TransformKind.EXPRESSION
        assert TRUE_COLOR.kind is TransformKind.VISUAL

    def test_expression_uses_every_band(self) -> None:
        for band in EVI.bands:
            assert band.lower() in EVI.expression


class TestGetTransform:
    def test_known_keys(self) -> None:
        for key, transform in TRANSFORMS.items():
            assert get_transform(key) is transform

    def test_unknown_key(self) -> None:
        with pytest.raises(KeyError, match="Unknown band transform"):
            get_transform("savi")
