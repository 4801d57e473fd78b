"""Health checks of depth sequences and layer boundaries, independent of the source format."""

from __future__ import annotations

import logging
import numbers
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from strata_extraction.utils.file_utils import read_params

logger = logging.getLogger(__name__)


class SequenceFindingKind(Enum):
    """Problems found in a depth sequence."""

    EMPTY = "empty"
    NON_NUMERIC = "non_numeric"
    NO_VALID_VALUES = "no_valid_values"
    NEGATIVE = "negative"
    INCONSISTENT_DIRECTION = "inconsistent_direction"
    DUPLICATES = "duplicates"
    LARGE_GAPS = "large_gaps"


@dataclass(frozen=True)
class SequenceFinding:
    """A problem found in a depth sequence, with the indices of the affected values."""

    kind: SequenceFindingKind
    message: str
    indices: tuple[int, ...] = ()


@dataclass(frozen=True)
class DepthStatistics:
    """Summary statistics of the numeric values of a depth sequence."""

    count: int
    min: float
    max: float
    is_increasing: bool
    unique_count: int

    def to_json(self) -> dict:
        return self.__dict__.copy()


@dataclass(frozen=True)
class DepthSequenceReport:
    """Result of validating a depth sequence. Only findings of error severity make the sequence invalid."""

    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    findings: tuple[SequenceFinding, ...] = ()
    stats: DepthStatistics | None = None

    def has_finding(self, kind: SequenceFindingKind) -> bool:
        return any(finding.kind == kind for finding in self.findings)

    def to_json(self) -> dict:
        """Convert the report to a JSON serializable format."""
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "stats": self.stats.to_json() if self.stats else None,
        }


@dataclass(frozen=True)
class IntervalConsistency:
    """Regularity of the intervals between consecutive depths."""

    consistent: bool
    intervals: tuple[float, ...] = ()
    mode: float | None = None
    consistency: float = 1.0
    variable_intervals: tuple[tuple[int, float], ...] = ()


@dataclass(frozen=True)
class MissingDepths:
    """Depths that appear to be missing from a regular sequence."""

    missing_depths: tuple[float, ...] = ()
    invalid_indices: tuple[int, ...] = ()

    @property
    def has_missing(self) -> bool:
        return bool(self.missing_depths) or bool(self.invalid_indices)


@dataclass(frozen=True)
class BoundaryReport:
    """Result of validating the boundaries of a layer sequence."""

    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    overlaps: tuple[tuple[int, int], ...] = field(default=())
    gaps: tuple[tuple[int, int, float], ...] = field(default=())


class ValidationService:
    """Validates depth sequences and layer boundaries. Validation never raises, it returns reports."""

    def __init__(self, params: dict):
        """Initialize the service.

        Args:
            params (dict): The `validation_params.yml` parameters.
        """
        self.direction_ratio = float(params["depth_sequence"]["direction_ratio"])
        self.large_gap_factor = float(params["depth_sequence"]["large_gap_factor"])
        self.mode_decimals = int(params["interval_consistency"]["mode_decimals"])
        self.relative_tolerance = float(params["interval_consistency"]["relative_tolerance"])
        self.min_consistent_ratio = float(params["interval_consistency"]["min_consistent_ratio"])
        self.missing_gap_factor = float(params["interval_consistency"]["missing_gap_factor"])
        self.boundary_gap_tolerance = float(params["layer_boundaries"]["gap_tolerance"])

    @classmethod
    def from_config(cls, config_filename: str = "validation_params.yml") -> ValidationService:
        return cls(read_params(config_filename))

    def validate_depth_sequence(self, depths: Sequence) -> DepthSequenceReport:
        """Check the health of a depth sequence.

        Missing or non-numeric values are errors. Negative depths, inconsistent direction changes, duplicates and
        unusually large gaps are warnings.

        Args:
            depths (Sequence): The depths, in document order. Entries may be None or non-numeric.

        Returns:
            DepthSequenceReport: The findings and, if there are numeric values, their statistics.
        """
        if len(depths) == 0:
            message = "No depth values found in the file"
            finding = SequenceFinding(SequenceFindingKind.EMPTY, message)
            return DepthSequenceReport(False, (message,), findings=(finding,))

        numeric = [(index, float(depth)) for index, depth in enumerate(depths) if is_number(depth)]
        non_numeric = [index for index, depth in enumerate(depths) if not is_number(depth)]
        if not numeric:
            message = "No valid numeric depth values found"
            finding = SequenceFinding(SequenceFindingKind.NO_VALID_VALUES, message, tuple(non_numeric))
            return DepthSequenceReport(False, (message,), findings=(finding,))

        errors = []
        warnings = []
        findings = []

        def add(kind: SequenceFindingKind, message: str, indices: list[int], is_error: bool = False):
            (errors if is_error else warnings).append(message)
            findings.append(SequenceFinding(kind, message, tuple(indices)))

        if non_numeric:
            add(
                SequenceFindingKind.NON_NUMERIC,
                f"Found {len(non_numeric)} non-numeric depth values",
                non_numeric,
                is_error=True,
            )

        values = np.array([value for _, value in numeric])
        indices = [index for index, _ in numeric]

        negative = [index for index, value in numeric if value < 0]
        if negative:
            add(SequenceFindingKind.NEGATIVE, f"Found {len(negative)} negative depth values", negative)

        steps = np.diff(values)
        increasing = int(np.sum(steps > 0))
        decreasing = int(np.sum(steps < 0))
        if increasing > 0 and decreasing > 0:
            if min(increasing, decreasing) / max(increasing, decreasing) > self.direction_ratio:
                minority = steps < 0 if decreasing < increasing else steps > 0
                affected = [indices[position + 1] for position in np.flatnonzero(minority)]
                add(
                    SequenceFindingKind.INCONSISTENT_DIRECTION,
                    "Depth sequence has inconsistent direction changes",
                    affected,
                )

        counts = Counter(values.tolist())
        seen = set()
        duplicates = []
        for index, value in numeric:
            if value in seen:
                duplicates.append(index)
            seen.add(value)
        if duplicates:
            add(SequenceFindingKind.DUPLICATES, f"Found {len(duplicates)} duplicate depth values", duplicates)

        sorted_values = np.sort(values)
        intervals = np.diff(sorted_values)
        if len(intervals) > 0:
            mean_interval = float(np.mean(intervals))
            large = np.flatnonzero(intervals > self.large_gap_factor * mean_interval) if mean_interval > 0 else []
            if len(large) > 0:
                add(
                    SequenceFindingKind.LARGE_GAPS,
                    f"Found {len(large)} unusually large gaps in depth sequence",
                    [],
                )

        stats = DepthStatistics(
            count=len(values),
            min=float(values.min()),
            max=float(values.max()),
            is_increasing=bool(np.all(steps >= 0)),
            unique_count=len(counts),
        )
        return DepthSequenceReport(not errors, tuple(errors), tuple(warnings), tuple(findings), stats)

    def check_depth_interval_consistency(self, depths: Sequence) -> IntervalConsistency:
        """Check how regular the intervals between consecutive depths are.

        The modal interval is computed on intervals rounded to `mode_decimals` decimals; among equally frequent
        intervals, the first one wins. The sequence is consistent if at least `min_consistent_ratio` of the
        intervals lie within `relative_tolerance` of the mode.

        Args:
            depths (Sequence): The depths. Non-numeric entries are ignored.

        Returns:
            IntervalConsistency: The intervals, their mode and the share of intervals matching it.
        """
        values = [float(depth) for depth in depths if is_number(depth)]
        if len(values) < 2:
            return IntervalConsistency(True)

        intervals = [abs(b - a) for a, b in zip(values, values[1:])]
        mode = Counter(round(interval, self.mode_decimals) for interval in intervals).most_common(1)[0][0]
        tolerance = mode * self.relative_tolerance
        variable = [(index, interval) for index, interval in enumerate(intervals) if abs(interval - mode) > tolerance]
        consistency = (len(intervals) - len(variable)) / len(intervals)
        return IntervalConsistency(
            consistent=consistency >= self.min_consistent_ratio,
            intervals=tuple(intervals),
            mode=mode,
            consistency=consistency,
            variable_intervals=tuple(variable),
        )

    def detect_missing_depths(self, depths: Sequence, expected_interval: float) -> MissingDepths:
        """Find depths missing from a sequence with a regular interval.

        Args:
            depths (Sequence): The depths. Non-numeric entries are reported as invalid.
            expected_interval (float): The regular interval between consecutive depths.

        Returns:
            MissingDepths: The depths expected but absent, and the indices of non-numeric entries.
        """
        invalid = tuple(index for index, depth in enumerate(depths) if not is_number(depth))
        if expected_interval <= 0:
            return MissingDepths(invalid_indices=invalid)

        values = sorted({float(depth) for depth in depths if is_number(depth)})
        missing = []
        for a, b in zip(values, values[1:]):
            if b - a <= self.missing_gap_factor * expected_interval:
                continue
            candidate = a + expected_interval
            while candidate < b - expected_interval / 2:
                missing.append(round(candidate, 2))
                candidate += expected_interval
        return MissingDepths(tuple(missing), invalid)

    def validate_layer_boundaries(self, layers: Sequence) -> BoundaryReport:
        """Check a layer sequence for inverted layers, overlaps and gaps.

        Layers are sorted by start depth first. Inverted layers are errors, overlaps and gaps larger than the gap
        tolerance between consecutive layers are warnings.

        Args:
            layers (Sequence): Layers, as objects or mappings with `material`, `start_depth` and `end_depth`.

        Returns:
            BoundaryReport: The errors and warnings found.
        """
        records = [_boundary(layer) for layer in layers]
        records = [record for record in records if is_number(record[1]) and is_number(record[2])]
        order = sorted(range(len(records)), key=lambda index: records[index][1])

        errors = []
        warnings = []
        overlaps = []
        gaps = []
        for index in order:
            material, start, end = records[index]
            if start > end:
                errors.append(f'Layer "{material}": start depth ({start}) > end depth ({end})')

        for previous_index, current_index in zip(order, order[1:]):
            previous_material, _, previous_end = records[previous_index]
            current_material, current_start, _ = records[current_index]
            if current_start < previous_end:
                overlaps.append((previous_index, current_index))
                warnings.append(f'Layers "{previous_material}" and "{current_material}" overlap')
            else:
                gap = current_start - previous_end
                if gap > self.boundary_gap_tolerance:
                    gaps.append((previous_index, current_index, round(gap, 2)))
                    warnings.append(f'Gap of {gap:g} between layers "{previous_material}" and "{current_material}"')

        return BoundaryReport(not errors, tuple(errors), tuple(warnings), tuple(overlaps), tuple(gaps))


def is_number(value: object) -> bool:
    """Whether the value is a finite real number."""
    if value is None or isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return bool(np.isfinite(float(value)))


def _boundary(layer: object) -> tuple[str, object, object]:
    """Read material, start and end depth from a layer object or a layer mapping."""
    if isinstance(layer, Mapping):
        return layer.get("material") or "", layer.get("start_depth"), layer.get("end_depth")
    return getattr(layer, "material", "") or "", getattr(layer, "start_depth", None), getattr(layer, "end_depth", None)
