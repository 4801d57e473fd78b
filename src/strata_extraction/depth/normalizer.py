"""Normalization of raw depth values to the canonical unit."""

from __future__ import annotations

import logging
import math
import numbers
import re
from dataclasses import dataclass, field, replace

from strata_extraction.utils.file_utils import read_params

from .units import UnitResolution, UnitTable

logger = logging.getLogger(__name__)

NON_NUMERIC_CHARACTERS = re.compile(r"[^\d.\-]")
LEADING_NUMBER = re.compile(r"^[-+]?(?:\d+\.?\d*|\.\d+)")


class DepthParseError(ValueError):
    """Raised when a raw depth value cannot be coerced to a number."""


@dataclass(frozen=True)
class DepthNormalization:
    """Result of normalizing a single depth value.

    `normalized_depth` is set whenever the value could be parsed and converted, even if the range check failed.
    `success` is only true if no error was found.
    """

    success: bool
    normalized_depth: float | None
    original_depth: object
    original_unit: str | None
    normalized_unit: str = "feet"
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    index: int | None = None

    @property
    def out_of_range(self) -> bool:
        """Whether the value was parsed but rejected by the range check."""
        return not self.success and self.normalized_depth is not None

    def to_json(self) -> dict:
        """Convert the normalization result to a JSON serializable format."""
        return {
            "success": self.success,
            "normalized_depth": self.normalized_depth,
            "normalized_unit": self.normalized_unit,
            "original_depth": self.original_depth if isinstance(self.original_depth, int | float | str) else None,
            "original_unit": self.original_unit,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "index": self.index,
        }


@dataclass(frozen=True)
class BatchStatistics:
    """Counts over a normalized batch of depths."""

    total: int
    successful: int
    failed: int
    warnings: int


@dataclass(frozen=True)
class BatchNormalization:
    """Result of normalizing a batch of depth values."""

    results: tuple[DepthNormalization, ...]
    statistics: BatchStatistics
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return self.statistics.failed == 0


@dataclass(frozen=True)
class SequenceValidation:
    """Gaps and overlaps found in a sequence of normalized depths."""

    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    gaps: tuple[tuple[int, int, float], ...] = field(default=())
    overlaps: tuple[tuple[int, int], ...] = field(default=())


class DepthNormalizer:
    """Converts raw depth values into the canonical unit and checks range and precision.

    The normalization runs through the following stages, each stage stopping the pipeline on failure:
    coercion to a number, unit resolution, conversion to the canonical unit, rounding, range check and
    precision check.
    """

    def __init__(self, unit_table: UnitTable, params: dict):
        """Initialize the normalizer.

        Args:
            unit_table (UnitTable): The unit vocabulary and conversion factors.
            params (dict): The `depth_params.yml` parameters (range, precision and sequence settings).
        """
        self.unit_table = unit_table
        self.min_depth = float(params["range"]["min_depth"])
        self.max_depth = float(params["range"]["max_depth"])
        self.warning_depth = float(params["range"]["warning_depth"])
        self.decimal_places = int(params["precision"]["decimal_places"])
        self.precision_tolerance = float(params["precision"]["tolerance"])
        self.sequence_gap_tolerance = float(params["sequence_gap_tolerance"])

    @classmethod
    def from_config(cls, config_filename: str = "depth_params.yml") -> DepthNormalizer:
        """Create a normalizer from a parameter file."""
        params = read_params(config_filename)
        return cls(UnitTable.from_params(params), params)

    @property
    def canonical_unit(self) -> str:
        return self.unit_table.canonical_unit

    def normalize(self, raw_depth: object, raw_unit: str | None = "ft") -> DepthNormalization:
        """Normalize a single depth value.

        Args:
            raw_depth (object): The depth as found in the document, a number or a string.
            raw_unit (str | None): The unit as found in the document. Defaults to "ft".

        Returns:
            DepthNormalization: The normalized depth, with the errors and warnings of every stage.
        """
        try:
            value = parse_numeric_depth(raw_depth)
        except DepthParseError as e:
            return DepthNormalization(
                success=False,
                normalized_depth=None,
                original_depth=raw_depth,
                original_unit=raw_unit,
                normalized_unit=self.canonical_unit,
                errors=(str(e),),
            )

        resolution = self.normalize_unit(raw_unit)
        return self._normalize_value(value, raw_depth, raw_unit, resolution)

    def normalize_unit(self, raw_unit: str | None) -> UnitResolution:
        """Resolve a raw unit string against the unit table."""
        return self.unit_table.resolve(raw_unit)

    def _normalize_value(
        self, value: float, raw_depth: object, raw_unit: str | None, resolution: UnitResolution
    ) -> DepthNormalization:
        warnings = list(resolution.warnings)
        errors = []

        converted = self.unit_table.to_canonical(value, resolution.unit)
        rounded = round(converted, self.decimal_places)

        if rounded < self.min_depth:
            errors.append(f"Depth {rounded} ft is below minimum ({self.min_depth:g} ft)")
        elif rounded > self.max_depth:
            errors.append(f"Depth {rounded} ft exceeds maximum ({self.max_depth:g} ft)")
        elif rounded > self.warning_depth:
            warnings.append(f"Depth {rounded} ft exceeds warning threshold ({self.warning_depth:g} ft)")

        difference = abs(converted - rounded)
        if difference > self.precision_tolerance:
            warnings.append(f"Precision loss: {converted:g} rounded to {rounded:g} (difference: {difference:.4f})")

        return DepthNormalization(
            success=not errors,
            normalized_depth=rounded,
            original_depth=raw_depth,
            original_unit=raw_unit,
            normalized_unit=self.canonical_unit,
            errors=tuple(errors),
            warnings=tuple(warnings),
        )

    def normalize_batch(self, depths: list, raw_unit: str | None = "ft") -> BatchNormalization:
        """Normalize a list of depth values sharing one unit.

        The unit is resolved once for the whole batch. Every result is tagged with the index of its value, and every
        error and warning is prefixed with "Item <index>: " so that it can be traced back to its source.

        Args:
            depths (list): The raw depth values.
            raw_unit (str | None): The unit shared by all values. Defaults to "ft".

        Returns:
            BatchNormalization: The individual results with aggregated messages and statistics.
        """
        resolution = self.normalize_unit(raw_unit)
        results = []
        errors = []
        warnings = [f"Batch: {warning}" for warning in resolution.warnings]
        for index, raw_depth in enumerate(depths):
            try:
                value = parse_numeric_depth(raw_depth)
            except DepthParseError as e:
                result = DepthNormalization(
                    success=False,
                    normalized_depth=None,
                    original_depth=raw_depth,
                    original_unit=raw_unit,
                    normalized_unit=self.canonical_unit,
                    errors=(str(e),),
                    index=index,
                )
            else:
                result = self._normalize_value(value, raw_depth, raw_unit, UnitResolution(resolution.unit))
                result = replace(result, index=index)
            errors.extend(f"Item {index}: {error}" for error in result.errors)
            warnings.extend(f"Item {index}: {warning}" for warning in result.warnings)
            results.append(result)

        successful = sum(1 for result in results if result.success)
        statistics = BatchStatistics(
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            warnings=sum(len(result.warnings) for result in results),
        )
        return BatchNormalization(tuple(results), statistics, tuple(errors), tuple(warnings))

    def validate_sequence(self, results: list[DepthNormalization]) -> SequenceValidation:
        """Check a set of normalized depths for overlaps and gaps.

        Only successful results take part. They are sorted by depth; two results with the same depth are an overlap
        (error), consecutive depths further apart than the gap tolerance are a gap (warning). Messages carry the
        original indices of both values.

        Args:
            results (list[DepthNormalization]): Normalized depths, typically from `normalize_batch`.

        Returns:
            SequenceValidation: The overlaps and gaps found.
        """
        indexed = [
            (result.index if result.index is not None else position, result.normalized_depth)
            for position, result in enumerate(results)
            if result.success
        ]
        indexed.sort(key=lambda item: item[1])

        errors = []
        warnings = []
        gaps = []
        overlaps = []
        for (previous_index, previous_depth), (current_index, current_depth) in zip(indexed, indexed[1:]):
            difference = current_depth - previous_depth
            if difference <= 0:
                overlaps.append((previous_index, current_index))
                errors.append(
                    f"Depth overlap between item {previous_index} ({previous_depth} ft) "
                    f"and item {current_index} ({current_depth} ft)"
                )
            elif difference > self.sequence_gap_tolerance:
                gaps.append((previous_index, current_index, round(difference, self.decimal_places)))
                warnings.append(
                    f"Depth gap detected: {difference:.2f} ft between {previous_depth} ft (item {previous_index}) "
                    f"and {current_depth} ft (item {current_index})"
                )

        return SequenceValidation(not errors, tuple(errors), tuple(warnings), tuple(gaps), tuple(overlaps))


def parse_numeric_depth(raw_depth: object) -> float:
    """Coerce a raw depth value to a float.

    Strings are stripped of every character other than digits, "." and "-" and their leading number is parsed,
    so that e.g. "12.5 ft" becomes 12.5.

    Args:
        raw_depth (object): The raw depth value.

    Returns:
        float: The numeric depth.

    Raises:
        DepthParseError: If the value is missing, not finite, or has no numeric content.
    """
    if raw_depth is None:
        raise DepthParseError("Depth value is null or undefined")

    if isinstance(raw_depth, bool):
        raise DepthParseError(f"Invalid depth type: {type(raw_depth).__name__}")

    if isinstance(raw_depth, numbers.Real):
        value = float(raw_depth)
        if math.isnan(value) or math.isinf(value):
            raise DepthParseError("Depth value is NaN or infinite")
        return value

    if isinstance(raw_depth, str):
        if not raw_depth.strip():
            raise DepthParseError("Depth value is empty string")
        sanitized = NON_NUMERIC_CHARACTERS.sub("", raw_depth)
        if not sanitized:
            raise DepthParseError("No numeric content found in depth value")
        match = LEADING_NUMBER.match(sanitized)
        if match is None:
            raise DepthParseError(f"Cannot parse depth value: '{raw_depth}'")
        return float(match.group(0))

    raise DepthParseError(f"Invalid depth type: {type(raw_depth).__name__}")
