"""The result of one extraction call."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from strata_extraction.errors import ExtractionIssue
from strata_extraction.layers.confidence import ConfidenceScore
from strata_extraction.layers.layer import ConfidenceLevel, ExtractedLayer

if TYPE_CHECKING:
    from strata_extraction.classification.error_classifier import ClassificationReport
    from strata_extraction.recovery.fallback_manager import FallbackStrategy, RecoverySession


@dataclass(frozen=True)
class ExtractionResult:
    """Terminal artifact of an extraction.

    The result is never mutated once returned. Edits made during the review produce a new result, see
    `StrataExtractor.apply_layer_edit`.
    """

    success: bool
    data: tuple[ExtractedLayer, ...] | None
    confidence: ConfidenceScore
    issues: tuple[ExtractionIssue, ...] = ()
    warnings: tuple[str, ...] = ()
    metadata: dict = field(default_factory=dict, compare=False)
    classification: ClassificationReport | None = None
    fallback_strategy: FallbackStrategy | None = None
    user_guidance: str | None = None
    recovery: RecoverySession | None = None

    @classmethod
    def failed(
        cls,
        issues: list[ExtractionIssue],
        warnings: list[str] | None = None,
        metadata: dict | None = None,
    ) -> ExtractionResult:
        """A result without layers."""
        return cls(
            success=False,
            data=None,
            confidence=ConfidenceScore(0.0, ConfidenceLevel.LOW),
            issues=tuple(issues),
            warnings=tuple(warnings or ()),
            metadata=metadata or {},
        )

    @property
    def layers(self) -> tuple[ExtractedLayer, ...]:
        return self.data or ()

    @property
    def errors(self) -> tuple[str, ...]:
        return tuple(issue.message for issue in self.issues)

    def to_json(self) -> dict:
        """Convert the result to a JSON serializable format."""
        return {
            "success": self.success,
            "data": [layer.to_json() for layer in self.data] if self.data is not None else None,
            "confidence": {"score": self.confidence.score, "level": self.confidence.level.value},
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "issues": [issue.to_json() for issue in self.issues],
            "metadata": self.metadata,
            "classification": self.classification.to_json() if self.classification else None,
            "fallback_strategy": self.fallback_strategy.to_json() if self.fallback_strategy else None,
            "user_guidance": self.user_guidance,
            "recovery": self.recovery.to_json() if self.recovery else None,
        }
