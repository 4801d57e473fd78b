"""Test suite for the layer and confidence modules."""

import pytest

from strata_extraction.layers.confidence import (
    LEVEL_WEIGHTS,
    ConfidenceScorer,
    check_layer_confidence,
    layer_confidence,
)
from strata_extraction.layers.layer import ConfidenceLevel, ExtractedLayer, LayerSource
from strata_extraction.parsers.raw_extraction import SignalKind


def _layer(material="Clay", start=0.0, end=5.0, confidence=ConfidenceLevel.HIGH):
    return ExtractedLayer(material, start, end, confidence, LayerSource.EXCEL_IMPORT)


def test_layer_confidence_from_signals():  # noqa: D103
    assert layer_confidence(SignalKind.BOTH) == ConfidenceLevel.HIGH
    assert layer_confidence(SignalKind.TEXT_ONLY) == ConfidenceLevel.HIGH
    assert layer_confidence(SignalKind.COLOR_ONLY) == ConfidenceLevel.MEDIUM
    assert layer_confidence(SignalKind.NEITHER) == ConfidenceLevel.LOW


def test_confidence_is_monotonic_in_signals():  # noqa: D103
    both = LEVEL_WEIGHTS[layer_confidence(SignalKind.BOTH)]
    color_only = LEVEL_WEIGHTS[layer_confidence(SignalKind.COLOR_ONLY)]
    assert both >= color_only, "A layer with text and color never scores lower than a layer with color only"
    assert layer_confidence(SignalKind.COLOR_ONLY) != ConfidenceLevel.HIGH


def test_layer_invariants():  # noqa: D103
    with pytest.raises(ValueError):
        _layer(start=5, end=5)
    with pytest.raises(ValueError):
        _layer(material="  ")
    assert _layer(start=2, end=5.5).thickness == 3.5


@pytest.mark.parametrize("confidence", list(ConfidenceLevel))
def test_edit_makes_layer_high_confidence(confidence):  # noqa: D103
    layer = _layer(confidence=confidence)
    edited = layer.with_user_edit()
    assert edited.confidence == ConfidenceLevel.HIGH
    assert edited.user_edited is True
    assert layer.user_edited is False, "The original layer is not modified"


def test_layer_json():  # noqa: D103
    layer = ExtractedLayer("Sand", 5.0, 10.0, ConfidenceLevel.MEDIUM, LayerSource.PDF_IMPORT, original_color="#FFFF00")
    data = layer.to_json()
    assert data == {
        "material": "Sand",
        "start_depth": 5.0,
        "end_depth": 10.0,
        "confidence": "medium",
        "source": "pdf-import",
        "original_color": "#FFFF00",
        "user_edited": False,
    }
    assert ExtractedLayer.from_json(data) == layer


def test_check_layer_confidence():  # noqa: D103
    layers = [_layer(confidence=ConfidenceLevel.LOW), _layer(confidence=ConfidenceLevel.LOW), _layer()]
    check = check_layer_confidence(layers)
    assert not check.acceptable
    assert check.warning == "Low extraction confidence: 33% of layers have medium or high confidence"

    check = check_layer_confidence([_layer(), _layer(confidence=ConfidenceLevel.MEDIUM)])
    assert check.acceptable
    assert check.high_ratio == 0.5
    assert check.warning is None


def test_score_without_layers():  # noqa: D103
    score = ConfidenceScorer().score([])
    assert score.score == 0.0
    assert score.level == ConfidenceLevel.LOW


def test_score_of_a_clean_extraction():  # noqa: D103
    layers = [_layer("Clay", 0, 10), _layer("Sand", 10, 20)]
    score = ConfidenceScorer().score(layers, parser_metadata={"parser": "excel", "mapped_columns": 2})
    assert score.score == 1.0, "The score is clamped to 1"
    assert score.level == ConfidenceLevel.HIGH
    assert score.factors["structure"] == 0.04


def test_score_with_validation_errors():  # noqa: D103
    layers = [_layer("Clay", 0, 10), _layer("Sand", 10, 20)]
    score = ConfidenceScorer().score(layers, validation_passed=False, validation_error_count=2, error_count=2)
    assert score.factors["validation"] == -0.1
    assert score.factors["error_penalty"] == -0.06
    assert score.score == pytest.approx(0.74)
    assert score.level == ConfidenceLevel.MEDIUM


def test_score_of_pdf_structure():  # noqa: D103
    layers = [_layer(confidence=ConfidenceLevel.LOW)]
    score = ConfidenceScorer().score(layers, parser_metadata={"parser": "pdf", "text_length": 500})
    assert score.factors["structure"] == 0.05
    assert score.factors["completeness"] == pytest.approx(0.04)


def test_confidence_levels():  # noqa: D103
    scorer = ConfidenceScorer(min_confidence_threshold=0.5, high_confidence_threshold=0.8)
    assert scorer.level_of(0.49) == ConfidenceLevel.LOW
    assert scorer.level_of(0.5) == ConfidenceLevel.MEDIUM
    assert scorer.level_of(0.79) == ConfidenceLevel.MEDIUM
    assert scorer.level_of(0.8) == ConfidenceLevel.HIGH
