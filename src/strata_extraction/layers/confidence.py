"""Per-layer and overall confidence of an extraction."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from strata_extraction.parsers.raw_extraction import SignalKind

from .layer import ConfidenceLevel, ExtractedLayer

logger = logging.getLogger(__name__)

LEVEL_WEIGHTS = {ConfidenceLevel.HIGH: 1.0, ConfidenceLevel.MEDIUM: 0.6, ConfidenceLevel.LOW: 0.2}


def layer_confidence(kind: SignalKind) -> ConfidenceLevel:
    """Confidence of a layer from the signals it was detected from.

    A material text makes a layer trustworthy regardless of its color. A color alone gives medium confidence, a
    layer with neither signal has low confidence.

    Args:
        kind (SignalKind): The signals of the layer.

    Returns:
        ConfidenceLevel: The confidence of the layer.
    """
    if kind in (SignalKind.BOTH, SignalKind.TEXT_ONLY):
        return ConfidenceLevel.HIGH
    if kind == SignalKind.COLOR_ONLY:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


@dataclass(frozen=True)
class LayerConfidenceCheck:
    """Share of layers with high and with at least medium confidence."""

    acceptable: bool
    high_ratio: float
    medium_or_high_ratio: float
    warning: str | None = None

    def to_json(self) -> dict:
        return {
            "acceptable": self.acceptable,
            "high_ratio": round(self.high_ratio, 3),
            "medium_or_high_ratio": round(self.medium_or_high_ratio, 3),
        }


def check_layer_confidence(layers: Sequence[ExtractedLayer], min_ratio: float = 0.5) -> LayerConfidenceCheck:
    """Check whether enough layers have at least medium confidence.

    Args:
        layers (Sequence[ExtractedLayer]): The layers.
        min_ratio (float): Minimal share of layers with medium or high confidence. Defaults to 0.5.

    Returns:
        LayerConfidenceCheck: The shares and, if they are too low, a warning.
    """
    if not layers:
        return LayerConfidenceCheck(False, 0.0, 0.0, "No layers were extracted")

    high = sum(1 for layer in layers if layer.confidence == ConfidenceLevel.HIGH)
    medium = sum(1 for layer in layers if layer.confidence == ConfidenceLevel.MEDIUM)
    high_ratio = high / len(layers)
    medium_or_high_ratio = (high + medium) / len(layers)
    if medium_or_high_ratio >= min_ratio:
        return LayerConfidenceCheck(True, high_ratio, medium_or_high_ratio)
    return LayerConfidenceCheck(
        False,
        high_ratio,
        medium_or_high_ratio,
        f"Low extraction confidence: {round(medium_or_high_ratio * 100)}% of layers have medium or high confidence",
    )


@dataclass(frozen=True)
class ConfidenceScore:
    """Overall confidence of an extraction, between 0 and 1, with the contribution of every factor."""

    score: float
    level: ConfidenceLevel
    factors: dict[str, float] = field(default_factory=dict, hash=False)

    def to_json(self) -> dict:
        return {"score": self.score, "level": self.level.value, "factors": dict(self.factors)}


class ConfidenceScorer:
    """Blends completeness, validation and structure signals into an overall confidence score.

    Starting from a base of 0.5, the score gains for complete required fields, for the completeness of the layers,
    for a passed validation and for the structure found by the parser, and loses for every error. It is clamped to
    [0, 1] and bucketed into a confidence level.
    """

    def __init__(self, min_confidence_threshold: float = 0.5, high_confidence_threshold: float = 0.8):
        self.min_confidence_threshold = min_confidence_threshold
        self.high_confidence_threshold = high_confidence_threshold

    def level_of(self, score: float) -> ConfidenceLevel:
        if score >= self.high_confidence_threshold:
            return ConfidenceLevel.HIGH
        if score >= self.min_confidence_threshold:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    def score(
        self,
        layers: Sequence[ExtractedLayer],
        validation_passed: bool = True,
        validation_error_count: int = 0,
        parser_metadata: dict | None = None,
        error_count: int = 0,
    ) -> ConfidenceScore:
        """Compute the overall confidence of an extraction.

        Args:
            layers (Sequence[ExtractedLayer]): The extracted layers.
            validation_passed (bool): Whether the depth and boundary validation passed. Defaults to True.
            validation_error_count (int): Number of validation errors. Defaults to 0.
            parser_metadata (dict | None): Metadata of the parser, providing the number of mapped columns for
                tabular sources and the text length for PDF sources. Defaults to None.
            error_count (int): Total number of errors of the extraction. Defaults to 0.

        Returns:
            ConfidenceScore: The score, its level and the contribution of every factor.
        """
        if not layers:
            return ConfidenceScore(0.0, ConfidenceLevel.LOW, {})

        metadata = parser_metadata or {}
        factors = {"base": 0.5}

        required_complete = all(layer.material.strip() and layer.start_depth < layer.end_depth for layer in layers)
        factors["required_fields"] = 0.2 if required_complete else 0.0

        completeness = sum(LEVEL_WEIGHTS[layer.confidence] for layer in layers) / len(layers)
        factors["completeness"] = 0.2 * completeness

        if validation_passed:
            factors["validation"] = 0.2
        else:
            factors["validation"] = -min(0.05 * validation_error_count, 0.3)

        if metadata.get("parser") == "excel":
            factors["structure"] = min(0.02 * metadata.get("mapped_columns", 0), 0.1)
        elif metadata.get("parser") == "pdf":
            factors["structure"] = min(metadata.get("text_length", 0) / 1000, 1.0) * 0.1

        factors["error_penalty"] = -min(0.03 * error_count, 0.2)

        score = min(max(sum(factors.values()), 0.0), 1.0)
        score = round(score, 3)
        return ConfidenceScore(score, self.level_of(score), {key: round(value, 3) for key, value in factors.items()})
