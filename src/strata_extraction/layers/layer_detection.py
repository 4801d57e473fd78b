"""Segmentation of raw signal points into layers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from strata_extraction.parsers.raw_extraction import RawExtraction, SignalKind, SignalPoint
from strata_extraction.validation.validation_service import is_number

from .confidence import layer_confidence
from .layer import ExtractedLayer, LayerSource

logger = logging.getLogger(__name__)

UNIDENTIFIED_MATERIAL = "Unidentified"
DEFAULT_LAST_LAYER_THICKNESS = 3.0


@dataclass
class Run:
    """Consecutive signal points sharing the same identifying key."""

    key: str
    points: list[SignalPoint] = field(default_factory=list)
    end_depth: float | None = None

    @property
    def start_depth(self) -> float:
        return self.points[0].depth

    @property
    def material(self) -> str | None:
        return self.points[0].material

    @property
    def color(self) -> str | None:
        return next((point.color for point in self.points if point.color is not None), None)

    @property
    def signal_kind(self) -> SignalKind:
        return SignalKind.from_signals(self.material is not None, self.color is not None)


def segment_runs(points: list[SignalPoint]) -> list[Run]:
    """Split depth-sorted signal points into runs of equal identifying keys.

    A new run starts whenever the key changes from one point to the next, so a material recurring after a different
    material starts a new run. Points without any signal carry no key; they never start a run, they only extend the
    depth range covered by the points. Each run ends at the depth of the point that starts the next run. The end of
    the last run is left open.

    Args:
        points (list[SignalPoint]): The signal points, sorted by depth.

    Returns:
        list[Run]: The runs, in depth order.
    """
    runs = []
    current = None
    for point in points:
        if point.kind == SignalKind.NEITHER:
            continue
        if current is not None and point.key == current.key:
            current.points.append(point)
            continue
        if current is not None:
            current.end_depth = point.depth
            runs.append(current)
        current = Run(point.key, [point])
    if current is not None:
        runs.append(current)
    return runs


class LayerDetector:
    """Converts the signal points of a raw extraction into a depth-ordered sequence of layers.

    The layers cover the depth range of the points without gaps. The end of the last layer is the deepest point, or,
    if the last layer starts at the deepest point, it is extrapolated by the thickness of the previous layer (or by
    a fixed default thickness if there is no previous layer).
    """

    def __init__(self, default_last_layer_thickness: float = DEFAULT_LAST_LAYER_THICKNESS):
        self.default_last_layer_thickness = default_last_layer_thickness

    def detect(self, raw: RawExtraction, source: LayerSource) -> list[ExtractedLayer]:
        """Detect the layers of a raw extraction.

        Args:
            raw (RawExtraction): The extraction, with normalized numeric depths.
            source (LayerSource): The source of the layers.

        Returns:
            list[ExtractedLayer]: The layers, in depth order.
        """
        return self._layers_from_points(self._sorted_points(raw), source)

    def detect_from_colors(self, raw: RawExtraction) -> list[ExtractedLayer]:
        """Detect layers from the fill colors only, ignoring the material texts.

        Args:
            raw (RawExtraction): The extraction, with normalized numeric depths.

        Returns:
            list[ExtractedLayer]: The color layers, with the fallback source.
        """
        points = [
            SignalPoint(point.index, point.depth, None, point.color) for point in self._sorted_points(raw)
        ]
        return self._layers_from_points(points, LayerSource.FALLBACK)

    def detect_from_thickness(self, raw: RawExtraction) -> list[ExtractedLayer]:
        """Stack layers using the thickness column, starting at the shallowest depth.

        Rows without a positive thickness are skipped. Layers without material text are named "Layer <n>".

        Args:
            raw (RawExtraction): The extraction, with normalized numeric depths and a thickness column.

        Returns:
            list[ExtractedLayer]: The stacked layers, with the fallback source.
        """
        if raw.thicknesses is None:
            return []
        depths = [float(depth) for depth in raw.depths if is_number(depth)]
        start = min(depths) if depths else 0.0

        layers = []
        for material, color, thickness in zip(raw.materials, raw.colors, raw.thicknesses):
            if thickness is None or thickness <= 0:
                continue
            kind = SignalKind.from_signals(True, color is not None) if material else SignalKind.NEITHER
            end = round(start + thickness, 2)
            layers.append(
                ExtractedLayer(
                    material=material or f"Layer {len(layers) + 1}",
                    start_depth=start,
                    end_depth=end,
                    confidence=layer_confidence(kind),
                    source=LayerSource.FALLBACK,
                    original_color=color,
                    signal_kind=kind,
                )
            )
            start = end
        return layers

    @staticmethod
    def _sorted_points(raw: RawExtraction) -> list[SignalPoint]:
        points = [point for point in raw.signal_points() if is_number(point.depth)]
        return sorted(points, key=lambda point: point.depth)

    def _layers_from_points(self, points: list[SignalPoint], source: LayerSource) -> list[ExtractedLayer]:
        runs = segment_runs(points)
        if not runs:
            return []

        max_depth = points[-1].depth
        last = runs[-1]
        if max_depth > last.start_depth:
            last.end_depth = max_depth
        else:
            previous = next((run for run in reversed(runs[:-1]) if run.end_depth > run.start_depth), None)
            if previous is not None:
                thickness = previous.end_depth - previous.start_depth
            else:
                thickness = self.default_last_layer_thickness
            last.end_depth = last.start_depth + thickness
            logger.debug("Extrapolated the last layer to %s.", last.end_depth)

        layers = []
        for run in runs:
            if run.end_depth <= run.start_depth:
                # key change at a duplicated depth
                continue
            layers.append(
                ExtractedLayer(
                    material=run.material.strip() if run.material else UNIDENTIFIED_MATERIAL,
                    start_depth=float(run.start_depth),
                    end_depth=float(run.end_depth),
                    confidence=layer_confidence(run.signal_kind),
                    source=source,
                    original_color=run.color,
                    signal_kind=run.signal_kind,
                )
            )
        return layers
