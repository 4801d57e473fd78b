"""Raw signals extracted from a document, before layer segmentation."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum


class SignalKind(Enum):
    """Which signals a point carries."""

    TEXT_ONLY = "text_only"
    COLOR_ONLY = "color_only"
    BOTH = "both"
    NEITHER = "neither"

    @classmethod
    def from_signals(cls, has_text: bool, has_color: bool) -> SignalKind:
        if has_text and has_color:
            return cls.BOTH
        if has_text:
            return cls.TEXT_ONLY
        if has_color:
            return cls.COLOR_ONLY
        return cls.NEITHER


@dataclass(frozen=True)
class SignalPoint:
    """One detected (depth, material, color) tuple.

    The identifying key of a point is its material if present, otherwise its color. Points without either signal
    have no key.
    """

    index: int
    depth: float | None
    material: str | None
    color: str | None

    @property
    def kind(self) -> SignalKind:
        return SignalKind.from_signals(self.material is not None, self.color is not None)

    @property
    def key(self) -> str | None:
        if self.material is not None:
            return self.material.casefold()
        if self.color is not None:
            return f"color:{self.color}"
        return None


@dataclass(frozen=True)
class RawExtraction:
    """Parser output: index-aligned sequences of depths, materials and colors.

    Every index represents one signal point. Depths are raw values as found in the document (numbers or strings)
    until the coordinator replaces them with normalized depths; a depth is None where no value could be read.

    Args:
        depths (list): The depth of every signal point.
        materials (list[str | None]): The material text of every signal point.
        colors (list[str | None]): The fill color of every signal point, e.g. "#A0522D" or "theme:4".
        depth_unit (str | None): The depth unit hinted at by the document, None if no hint was found.
        thicknesses (list[float | None] | None): Layer thicknesses, for tabular sources with a thickness column.
        metadata (dict): Parser specific information, e.g. headers or page count.
    """

    depths: list
    materials: list[str | None]
    colors: list[str | None]
    depth_unit: str | None = None
    thicknesses: list[float | None] | None = None
    metadata: dict = field(default_factory=dict, compare=False)

    def __post_init__(self):
        lengths = {len(self.depths), len(self.materials), len(self.colors)}
        if self.thicknesses is not None:
            lengths.add(len(self.thicknesses))
        if len(lengths) > 1:
            raise ValueError(
                f"Raw extraction sequences must have equal lengths, got depths={len(self.depths)}, "
                f"materials={len(self.materials)}, colors={len(self.colors)}"
            )

    def __len__(self) -> int:
        return len(self.depths)

    def signal_points(self) -> list[SignalPoint]:
        """All signal points in document order."""
        return [
            SignalPoint(index, depth, material, color)
            for index, (depth, material, color) in enumerate(zip(self.depths, self.materials, self.colors))
        ]

    def select(self, indices: list[int]) -> RawExtraction:
        """Keep only the points at the given indices, in the given order, keeping all sequences aligned."""
        return replace(
            self,
            depths=[self.depths[index] for index in indices],
            materials=[self.materials[index] for index in indices],
            colors=[self.colors[index] for index in indices],
            thicknesses=[self.thicknesses[index] for index in indices] if self.thicknesses is not None else None,
        )

    def with_depths(self, depths: list) -> RawExtraction:
        """Copy of this extraction with replaced depths."""
        return replace(self, depths=list(depths))

    @property
    def has_materials(self) -> bool:
        return any(material is not None for material in self.materials)

    @property
    def has_colors(self) -> bool:
        return any(color is not None for color in self.colors)

    def to_json(self) -> dict:
        """Convert the raw extraction to a JSON serializable format."""
        return {
            "depths": [depth if isinstance(depth, int | float | str) else None for depth in self.depths],
            "materials": list(self.materials),
            "colors": list(self.colors),
            "depth_unit": self.depth_unit,
            "thicknesses": list(self.thicknesses) if self.thicknesses is not None else None,
        }
