#!/usr/bin/env python3
"""
Tests for the typed collector configuration.

Covers value-type validation, preprocessing step parsing and the invariants
enforced by CollectorConfig itself.
"""

import dataclasses

import numpy as np
import pytest

from octseg_collector.config_types import (
    ClipRange,
    ComputeDataType,
    EigenspaceProjection,
    MedianFilter,
    PreprocessingConfig,
    RegionBounds,
    Standardize,
    preprocessing_step_from_value,
)
from octseg_collector.errors import ConfigError, ConfigErrorKind
from octseg_collector.resolver import resolve_collector_config


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def resolved(fake_loaders, base_options, two_files):
    """A valid config resolved with the fake loaders."""
    return resolve_collector_config(
        base_options, None, two_files, "data/scans", "data/labels"
    )


# ============================================================================
# VALUE TYPES
# ============================================================================


class TestClipRange:
    def test_width(self):
        assert ClipRange(5, 50).width == 46

    @pytest.mark.parametrize("value", [(5, 50), [5, 50], np.array([5, 50])])
    def test_from_pair(self, value):
        assert ClipRange.from_value(value) == ClipRange(5, 50)

    def test_from_mapping(self):
        assert ClipRange.from_value({"left": 3, "right": 9}) == ClipRange(3, 9)

    def test_from_mapping_missing_key(self):
        with pytest.raises(ConfigError) as exc_info:
            ClipRange.from_value({"left": 3})
        assert exc_info.value.kind is ConfigErrorKind.INVALID_VALUE

    def test_wrong_length(self):
        with pytest.raises(ConfigError):
            ClipRange.from_value([1, 2, 3])

    @pytest.mark.parametrize("left,right", [(50, 5), (7, 7), (0, 10)])
    def test_invalid(self, left, right):
        with pytest.raises(ConfigError) as exc_info:
            ClipRange(left, right)
        assert exc_info.value.kind is ConfigErrorKind.INVALID_CLIP_RANGE

    def test_fits_within(self):
        assert ClipRange(1, 768).fits_within(768)
        assert not ClipRange(1, 769).fits_within(768)


class TestRegionBounds:
    def test_single_column_region(self):
        assert RegionBounds(4, 4).left == 4

    def test_invalid(self):
        with pytest.raises(ConfigError):
            RegionBounds(10, 5)


class TestPreprocessingSteps:
    """Raw (operation, params) entries become typed steps."""

    def test_scalar_param(self):
        assert preprocessing_step_from_value(("projToEigenspace", 12)) == (
            EigenspaceProjection(rank=12)
        )

    def test_mapping_param(self):
        assert preprocessing_step_from_value(["medianFilter", {"size": 5}]) == (
            MedianFilter(size=5)
        )

    def test_name_only(self):
        assert preprocessing_step_from_value("standardize") == Standardize()

    def test_function_handle(self):
        def projToEigenspace(patches, rank):  # noqa: N802
            return patches

        step = preprocessing_step_from_value((projToEigenspace, 20))
        assert step == EigenspaceProjection(rank=20)

    def test_step_instance_passes_through(self):
        step = MedianFilter(size=7)
        assert preprocessing_step_from_value(step) is step

    def test_even_median_size_rejected(self):
        with pytest.raises(ConfigError):
            MedianFilter(size=4)

    def test_round_trip_dict(self):
        config = PreprocessingConfig(
            patch_level=(EigenspaceProjection(rank=20),),
            scan_level=(MedianFilter(size=3), Standardize()),
        )
        assert PreprocessingConfig.from_dict(config.to_dict()) == config


class TestComputeDataType:
    def test_from_flag(self):
        assert ComputeDataType.from_flag(False) is ComputeDataType.CPU_DOUBLE
        assert ComputeDataType.from_flag(True) is ComputeDataType.ACCELERATOR_RESIDENT


# ============================================================================
# COLLECTOR CONFIG INVARIANTS
# ============================================================================


class TestCollectorConfigInvariants:
    """Invalid combinations are rejected when the config is built."""

    def test_frozen(self, resolved):
        with pytest.raises(dataclasses.FrozenInstanceError):
            resolved.patch_width = 9

    def test_region_count_mismatch(self, resolved):
        with pytest.raises(ConfigError) as exc_info:
            dataclasses.replace(resolved, regions_per_bscan=2)
        assert exc_info.value.field == "regions_per_bscan"

    def test_layer_count_mismatch(self, resolved):
        with pytest.raises(ConfigError) as exc_info:
            dataclasses.replace(resolved, layer_count=resolved.boundary_count)
        assert exc_info.value.field == "layer_count"

    def test_columns_shape_mismatch(self, resolved):
        with pytest.raises(ConfigError):
            dataclasses.replace(resolved, columns_shape=())

    @pytest.mark.parametrize("verbosity", [-1, 3])
    def test_verbosity(self, resolved, verbosity):
        with pytest.raises(ConfigError):
            dataclasses.replace(resolved, verbosity=verbosity)

    def test_patch_position(self, resolved):
        with pytest.raises(ConfigError):
            dataclasses.replace(resolved, patch_position="top")

    def test_clip_without_range(self, resolved):
        with pytest.raises(ConfigError) as exc_info:
            dataclasses.replace(resolved, clip=True, clip_range=None)
        assert exc_info.value.kind is ConfigErrorKind.MISSING_CLIP_RANGE

    def test_data_type_must_follow_flag(self, resolved):
        with pytest.raises(ConfigError):
            dataclasses.replace(resolved, compute_on_accelerator=True)

    def test_label_ids_row_width(self, resolved):
        with pytest.raises(ConfigError) as exc_info:
            dataclasses.replace(resolved, label_ids=((0, 0), (0, 0)))
        assert exc_info.value.kind is ConfigErrorKind.INVALID_LABEL_IDS


class TestAsDict:
    def test_plain_values(self, resolved):
        d = resolved.as_dict()
        assert d["scan_width"] == 768
        assert d["bscan_region_bounds"] == [(1, 768)]
        assert d["compute_data_type"] == "cpu-double"
        assert d["preprocessing"]["patch_level"] == [
            ("projToEigenspace", {"rank": 20})
        ]
        assert d["clip_range"] is None
        assert "data_loader_fn" not in d
