"""Layer class definition."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from strata_extraction.parsers.raw_extraction import SignalKind


class ConfidenceLevel(str, Enum):
    """Qualitative trust bucket of a layer or of a whole extraction."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class LayerSource(str, Enum):
    """Where a layer comes from."""

    EXCEL_IMPORT = "excel-import"
    PDF_IMPORT = "pdf-import"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ExtractedLayer:
    """A depth interval with a single material classification.

    Depths are in feet. The start depth is strictly smaller than the end depth, and the material is never blank.
    """

    material: str
    start_depth: float
    end_depth: float
    confidence: ConfidenceLevel
    source: LayerSource
    original_color: str | None = None
    user_edited: bool = False
    signal_kind: SignalKind = SignalKind.TEXT_ONLY

    def __post_init__(self):
        if not self.material or not self.material.strip():
            raise ValueError("A layer must have a material.")
        if not self.start_depth < self.end_depth:
            raise ValueError(
                f"The start depth of a layer must be smaller than its end depth, got {self.start_depth} and "
                f"{self.end_depth}."
            )

    @property
    def thickness(self) -> float:
        return self.end_depth - self.start_depth

    def with_user_edit(self) -> ExtractedLayer:
        """Copy of the layer marked as edited by a user, which makes its confidence high."""
        return replace(self, confidence=ConfidenceLevel.HIGH, user_edited=True)

    def to_json(self) -> dict:
        """Convert the layer to a JSON serializable format."""
        return {
            "material": self.material,
            "start_depth": self.start_depth,
            "end_depth": self.end_depth,
            "confidence": self.confidence.value,
            "source": self.source.value,
            "original_color": self.original_color,
            "user_edited": self.user_edited,
        }

    @classmethod
    def from_json(cls, data: dict) -> ExtractedLayer:
        """Converts a dictionary to an object.

        Args:
            data (dict): A dictionary representing the layer.

        Returns:
            ExtractedLayer: The corresponding layer.
        """
        return cls(
            material=data["material"],
            start_depth=float(data["start_depth"]),
            end_depth=float(data["end_depth"]),
            confidence=ConfidenceLevel(data["confidence"]),
            source=LayerSource(data["source"]),
            original_color=data.get("original_color"),
            user_edited=bool(data.get("user_edited", False)),
        )
