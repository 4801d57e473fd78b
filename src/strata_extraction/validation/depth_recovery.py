"""Automated repair of invalid depth sequences."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from strata_extraction.parsers.raw_extraction import RawExtraction

from .validation_service import DepthSequenceReport, SequenceFindingKind, is_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecoveryOutcome:
    """A repaired raw extraction with a description of every change."""

    raw: RawExtraction
    actions: tuple[str, ...]
    warnings: tuple[str, ...]


class DepthRecovery:
    """Repairs the depth sequence of a raw extraction.

    Missing depths are interpolated from their neighbours, outlier depths and duplicates are discarded. Every change
    is reported as a warning. The depths, materials and colors of the extraction stay aligned.
    """

    def __init__(self, outlier_median_factor: float = 2.0):
        self.outlier_median_factor = outlier_median_factor

    @classmethod
    def from_params(cls, params: dict) -> DepthRecovery:
        """Create the recovery from the `validation_params.yml` parameters."""
        return cls(float(params["recovery"]["outlier_median_factor"]))

    def recover(self, raw: RawExtraction, report: DepthSequenceReport) -> RecoveryOutcome | None:
        """Attempt to repair the depth sequence of an extraction.

        Args:
            raw (RawExtraction): The extraction with normalized depths.
            report (DepthSequenceReport): The validation report of its depths.

        Returns:
            RecoveryOutcome | None: The repaired extraction, or None if nothing could be repaired.
        """
        actions = []
        warnings = []

        if report.has_finding(SequenceFindingKind.NON_NUMERIC):
            raw, interpolated, discarded = self.fill_missing_depths(raw)
            if interpolated:
                actions.append("interpolate_missing_depths")
                warnings.append(f"Interpolated {len(interpolated)} missing depth values from neighbouring depths")
            if discarded:
                actions.append("discard_unrecoverable_depths")
                warnings.append(f"Discarded {len(discarded)} entries whose depth could not be interpolated")

        if report.has_finding(SequenceFindingKind.INCONSISTENT_DIRECTION):
            raw, outliers = self.discard_outlier_depths(raw)
            actions.append("sort_depths")
            if outliers:
                actions.append("discard_outlier_depths")
                listed = ", ".join(f"{depth:g}" for depth in outliers)
                warnings.append(f"Discarded {len(outliers)} outlier depth values: {listed}")

        if report.has_finding(SequenceFindingKind.DUPLICATES):
            raw, removed = self.remove_duplicate_depths(raw)
            if removed:
                actions.append("remove_duplicate_depths")
                warnings.append(f"Removed {removed} entries with duplicate depths")

        if not actions or len(raw) == 0:
            return None

        logger.info("Depth recovery applied: %s", ", ".join(actions))
        return RecoveryOutcome(raw, tuple(actions), tuple(warnings))

    @staticmethod
    def fill_missing_depths(raw: RawExtraction) -> tuple[RawExtraction, list[int], list[int]]:
        """Linearly interpolate missing depths between the nearest valid neighbours.

        Entries before the first or after the last valid depth cannot be interpolated and are discarded.

        Returns:
            tuple[RawExtraction, list[int], list[int]]: The repaired extraction, the indices of the interpolated
                entries and the indices of the discarded entries.
        """
        valid = [index for index, depth in enumerate(raw.depths) if is_number(depth)]
        if not valid:
            return raw, [], list(range(len(raw)))

        depths = list(raw.depths)
        interpolated = []
        discarded = []
        for index, depth in enumerate(raw.depths):
            if is_number(depth):
                continue
            if valid[0] < index < valid[-1]:
                depths[index] = round(float(np.interp(index, valid, [raw.depths[i] for i in valid])), 2)
                interpolated.append(index)
            else:
                discarded.append(index)

        discarded_indices = set(discarded)
        kept = [index for index in range(len(raw)) if index not in discarded_indices]
        return raw.with_depths(depths).select(kept), interpolated, discarded

    def discard_outlier_depths(self, raw: RawExtraction) -> tuple[RawExtraction, list[float]]:
        """Sort the entries by depth and discard depths larger than a multiple of the median depth."""
        order = sorted(range(len(raw)), key=lambda index: raw.depths[index])
        median = float(np.median(raw.depths)) if len(raw) else 0.0
        if median <= 0:
            return raw.select(order), []
        limit = self.outlier_median_factor * median
        kept = [index for index in order if raw.depths[index] <= limit]
        outliers = [raw.depths[index] for index in order if raw.depths[index] > limit]
        return raw.select(kept), outliers

    @staticmethod
    def remove_duplicate_depths(raw: RawExtraction) -> tuple[RawExtraction, int]:
        """Keep only the first entry of every depth."""
        seen = set()
        kept = []
        for index, depth in enumerate(raw.depths):
            if depth in seen:
                continue
            seen.add(depth)
            kept.append(index)
        return raw.select(kept), len(raw) - len(kept)
