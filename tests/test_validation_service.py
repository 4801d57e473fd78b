"""Test suite for the validation service module."""

import pytest

from strata_extraction.layers.layer import ConfidenceLevel, ExtractedLayer, LayerSource
from strata_extraction.validation.validation_service import SequenceFindingKind, is_number


def test_valid_sequence(validator):  # noqa: D103
    report = validator.validate_depth_sequence([0, 2.5, 5, 7.5, 10])
    assert report.valid, "A strictly increasing sequence without gaps or duplicates is valid"
    assert report.errors == ()
    assert report.warnings == ()
    assert report.stats.count == 5
    assert report.stats.is_increasing
    assert report.stats.min == 0.0 and report.stats.max == 10.0


def test_empty_sequence(validator):  # noqa: D103
    report = validator.validate_depth_sequence([])
    assert not report.valid
    assert "No depth values" in report.errors[0]
    assert report.has_finding(SequenceFindingKind.EMPTY)


def test_no_numeric_values(validator):  # noqa: D103
    report = validator.validate_depth_sequence([None, "abc"])
    assert not report.valid
    assert report.errors == ("No valid numeric depth values found",)
    assert report.stats is None


def test_non_numeric_values(validator):  # noqa: D103
    report = validator.validate_depth_sequence([0, None, 10])
    assert not report.valid
    assert report.errors == ("Found 1 non-numeric depth values",)
    finding = report.findings[0]
    assert finding.kind == SequenceFindingKind.NON_NUMERIC
    assert finding.indices == (1,)


def test_negative_and_direction_warnings(validator):  # noqa: D103
    report = validator.validate_depth_sequence([0, 5, -1])
    assert report.valid, "Negative depths and direction changes are warnings only"
    assert "Found 1 negative depth values" in report.warnings
    assert "Depth sequence has inconsistent direction changes" in report.warnings


def test_minor_direction_change_is_tolerated(validator):  # noqa: D103
    report = validator.validate_depth_sequence([0, 1, 2, 3, 4, 5, 6, 5.5, 7, 8])
    assert not report.has_finding(SequenceFindingKind.INCONSISTENT_DIRECTION), "1 of 9 steps is below the 20% ratio"


def test_duplicates(validator):  # noqa: D103
    report = validator.validate_depth_sequence([0, 5, 5, 10])
    assert report.valid
    assert report.warnings == ("Found 1 duplicate depth values",)
    assert report.findings[0].indices == (2,)


def test_large_gaps(validator):  # noqa: D103
    report = validator.validate_depth_sequence([0, 1, 2, 3, 20])
    assert "Found 1 unusually large gaps in depth sequence" in report.warnings


def test_interval_consistency(validator):  # noqa: D103
    consistency = validator.check_depth_interval_consistency([0, 5, 10, 15, 20])
    assert consistency.consistent
    assert consistency.mode == 5.0
    assert consistency.consistency == 1.0

    consistency = validator.check_depth_interval_consistency([0, 5, 10, 20])
    assert not consistency.consistent, "Only 2 of 3 intervals match the mode"
    assert consistency.variable_intervals == ((2, 10.0),)

    assert validator.check_depth_interval_consistency([3]).consistent


def test_detect_missing_depths(validator):  # noqa: D103
    missing = validator.detect_missing_depths([0, 5, 15, 20, None], 5)
    assert missing.missing_depths == (10.0,)
    assert missing.invalid_indices == (4,)
    assert missing.has_missing

    assert not validator.detect_missing_depths([0, 5, 10], 5).has_missing


def test_layer_boundaries(validator):  # noqa: D103
    layers = [
        ExtractedLayer("Clay", 0, 5, ConfidenceLevel.HIGH, LayerSource.EXCEL_IMPORT),
        ExtractedLayer("Sand", 5, 10, ConfidenceLevel.HIGH, LayerSource.EXCEL_IMPORT),
    ]
    report = validator.validate_layer_boundaries(layers)
    assert report.valid
    assert report.warnings == ()


def test_layer_boundaries_from_mappings(validator):  # noqa: D103
    overlap = validator.validate_layer_boundaries(
        [
            {"material": "Sand", "start_depth": 5, "end_depth": 10},
            {"material": "Clay", "start_depth": 0, "end_depth": 6},
        ]
    )
    assert overlap.valid, "Overlaps are warnings"
    assert overlap.warnings == ('Layers "Clay" and "Sand" overlap',), "Layers are sorted by start depth first"
    assert overlap.overlaps == ((1, 0),)

    gap = validator.validate_layer_boundaries(
        [
            {"material": "Clay", "start_depth": 0, "end_depth": 5},
            {"material": "Sand", "start_depth": 6, "end_depth": 10},
        ]
    )
    assert gap.warnings == ('Gap of 1 between layers "Clay" and "Sand"',)

    inverted = validator.validate_layer_boundaries([{"material": "Silt", "start_depth": 10, "end_depth": 8}])
    assert not inverted.valid
    assert inverted.errors == ('Layer "Silt": start depth (10) > end depth (8)',)


@pytest.mark.parametrize(
    "value,expected", [(1, True), (2.5, True), (None, False), (True, False), ("3", False), (float("nan"), False)]
)
def test_is_number(value, expected):  # noqa: D103
    assert is_number(value) is expected
