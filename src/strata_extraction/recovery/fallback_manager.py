"""Selection and execution of fallback strategies for failed or low-confidence extractions."""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from strata_extraction.classification.error_classifier import ClassificationReport, ErrorClassification
from strata_extraction.errors import ErrorSeverity
from strata_extraction.layers.layer import ConfidenceLevel, ExtractedLayer, LayerSource
from strata_extraction.layers.layer_detection import UNIDENTIFIED_MATERIAL
from strata_extraction.parsers.raw_extraction import SignalKind
from strata_extraction.settings import ExtractionSettings
from strata_extraction.utils.file_utils import read_params

if TYPE_CHECKING:
    from strata_extraction.result import ExtractionResult

logger = logging.getLogger(__name__)

CORRECTION_SEVERITY = {ErrorSeverity.FATAL: "high", ErrorSeverity.RECOVERABLE: "medium", ErrorSeverity.WARNING: "low"}
SEVERITY_RANK = {"high": 3, "medium": 2, "low": 1}


class FallbackType(str, Enum):
    """Recovery strategies, from the least to the most user effort."""

    PARTIAL_EXTRACTION = "partial_extraction"
    GUIDED_CORRECTION = "guided_correction"
    TEMPLATE_BASED = "template_based"
    MANUAL_ENTRY = "manual_entry"


@dataclass(frozen=True)
class TemplateMatch:
    """A structural template matched against the headers of a document."""

    name: str
    description: str
    field_mapping: dict[str, str]
    score: float

    def to_json(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "field_mapping": dict(self.field_mapping),
            "score": self.score,
        }


@dataclass(frozen=True)
class StructuralTemplate:
    """A known document layout, described by the fields it requires and the header patterns of every field."""

    name: str
    description: str
    required_fields: tuple[str, ...]
    field_patterns: dict[str, tuple[re.Pattern, ...]]

    @classmethod
    def from_params(cls, params: dict) -> StructuralTemplate:
        return cls(
            name=params["name"],
            description=params.get("description", ""),
            required_fields=tuple(params["required_fields"]),
            field_patterns={
                field_name: tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns)
                for field_name, patterns in params["field_patterns"].items()
            },
        )

    def match(self, headers: Sequence[str]) -> TemplateMatch | None:
        """Map every required field to a distinct header.

        Args:
            headers (Sequence[str]): The headers found in the document.

        Returns:
            TemplateMatch | None: The mapping from headers to fields, or None if a required field has no header.
        """
        mapping = {}
        for field_name in self.required_fields:
            header = next(
                (
                    header
                    for header in headers
                    if header not in mapping
                    and any(pattern.fullmatch(header.strip()) for pattern in self.field_patterns.get(field_name, ()))
                ),
                None,
            )
            if header is None:
                return None
            mapping[header] = field_name
        score = len(self.required_fields) / max(len(headers), len(self.required_fields))
        return TemplateMatch(self.name, self.description, mapping, round(score, 3))


@dataclass(frozen=True)
class FallbackStrategy:
    """The recovery plan for an extraction. `type` is None if the extraction cannot be recovered."""

    type: FallbackType | None
    can_recover: bool
    estimated_effort: str
    user_guidance: str
    reason: str
    actions: tuple[str, ...] = ()
    template: TemplateMatch | None = None

    def to_json(self) -> dict:
        return {
            "type": self.type.value if self.type else None,
            "can_recover": self.can_recover,
            "estimated_effort": self.estimated_effort,
            "user_guidance": self.user_guidance,
            "reason": self.reason,
            "actions": list(self.actions),
            "template": self.template.to_json() if self.template else None,
        }


@dataclass(frozen=True)
class RecoveryContext:
    """What the fallback manager knows about the extraction it recovers."""

    filename: str
    file_size: int
    result: ExtractionResult
    report: ClassificationReport


@dataclass(frozen=True)
class Correction:
    """A flagged issue the user is guided through."""

    type: ErrorSeverity
    message: str
    severity: str
    suggested_action: str
    affected_layers: tuple[int, ...]

    def to_json(self) -> dict:
        return {
            "type": self.type.value,
            "message": self.message,
            "severity": self.severity,
            "suggested_action": self.suggested_action,
            "affected_layers": list(self.affected_layers),
        }


@dataclass(frozen=True)
class RecoverySession:
    """Description of the review step a recovery hands over to the user. It never saves any data."""

    recovery_id: str
    strategy: FallbackType
    success: bool
    data: dict
    next_steps: tuple[str, ...] = ()
    corrections: tuple[Correction, ...] = ()

    def to_json(self) -> dict:
        return {
            "recovery_id": self.recovery_id,
            "strategy": self.strategy.value,
            "success": self.success,
            "data": self.data,
            "next_steps": list(self.next_steps),
            "corrections": [correction.to_json() for correction in self.corrections],
        }


@dataclass
class RecoveryAttempt:
    """Bookkeeping of one executed strategy."""

    strategy: FallbackType | None
    start_time: float = field(default_factory=time.time)
    status: str = "in_progress"
    end_time: float | None = None
    error: str | None = None


class FallbackManager:
    """Chooses how the user continues when the automatic extraction is incomplete or uncertain.

    The strategies are tried from the least to the most user effort: review of a partial extraction, guided
    correction of flagged issues, mapping of the document to a known structural template, and manual entry with the
    original file as reference. Extractions with fatal errors are not recovered at all.
    """

    def __init__(
        self,
        templates: Sequence[StructuralTemplate] = (),
        enable_guided_correction: bool = True,
        enable_template_matching: bool = True,
        min_confidence: float = 0.3,
        partial_threshold: float = 0.5,
    ):
        self.templates = tuple(templates)
        self.enable_guided_correction = enable_guided_correction
        self.enable_template_matching = enable_template_matching
        self.min_confidence = min_confidence
        self.partial_threshold = partial_threshold
        self.recovery_attempts: dict[str, RecoveryAttempt] = {}

    @classmethod
    def from_config(
        cls, settings: ExtractionSettings | None = None, config_filename: str = "fallback_params.yml"
    ) -> FallbackManager:
        settings = settings or ExtractionSettings()
        params = read_params(config_filename)
        return cls(
            templates=[StructuralTemplate.from_params(template) for template in params["templates"]],
            enable_guided_correction=settings.enable_guided_correction,
            enable_template_matching=settings.enable_template_matching,
            min_confidence=settings.fallback_min_confidence,
            partial_threshold=settings.partial_extraction_threshold,
        )

    def reset(self):
        self.recovery_attempts.clear()

    def determine_fallback_strategy(self, result: ExtractionResult, report: ClassificationReport) -> FallbackStrategy:
        """Select the recovery strategy for an extraction.

        Args:
            result (ExtractionResult): The failed or low-confidence extraction.
            report (ClassificationReport): The classification of its errors.

        Returns:
            FallbackStrategy: The selected strategy.
        """
        if report.should_abort:
            return FallbackStrategy(
                type=None,
                can_recover=False,
                estimated_effort="none",
                user_guidance=(
                    "Automatic extraction was not successful. Please check the file format and try again, or enter "
                    "the data manually while viewing the original file."
                ),
                reason="Critical errors prevent recovery",
                actions=("Check the file format", "Try a different file", "Enter the data manually"),
            )

        score = result.confidence.score
        layer_count = len(result.layers)

        if layer_count and score >= self.partial_threshold:
            return FallbackStrategy(
                type=FallbackType.PARTIAL_EXTRACTION,
                can_recover=True,
                estimated_effort="low",
                user_guidance=(
                    f"{layer_count} items were extracted with {round(score * 100)}% confidence. Please review and "
                    "complete the missing data."
                ),
                reason="Part of the data was extracted with acceptable confidence",
                actions=("Review the extracted layers", "Complete the missing data", "Save the reviewed data"),
            )

        if layer_count and self.enable_guided_correction and self.min_confidence <= score < self.partial_threshold:
            return FallbackStrategy(
                type=FallbackType.GUIDED_CORRECTION,
                can_recover=True,
                estimated_effort="medium",
                user_guidance=(
                    f"Extraction completed with low confidence ({round(score * 100)}%). Follow the guided "
                    "corrections to fix the flagged issues."
                ),
                reason="Extraction confidence is below the partial extraction threshold",
                actions=("Open the guided corrections", "Fix the flagged issues", "Save the corrected data"),
            )

        template = self.find_template_match(result.metadata.get("source", {}))
        if template is not None:
            return FallbackStrategy(
                type=FallbackType.TEMPLATE_BASED,
                can_recover=True,
                estimated_effort="medium",
                user_guidance=(
                    f"The document looks like a {template.description.lower()}. Please confirm how its columns map "
                    "to the layer fields."
                ),
                reason=f"The document structure matches the template '{template.name}'",
                actions=("Confirm the column mapping", "Review the mapped layers", "Save the reviewed data"),
                template=template,
            )

        return FallbackStrategy(
            type=FallbackType.MANUAL_ENTRY,
            can_recover=True,
            estimated_effort="high",
            user_guidance=(
                "Automatic extraction was not successful. You can enter the data manually while viewing the "
                "original file."
            ),
            reason="Automatic extraction failed, manual entry required",
            actions=("Open the manual entry", "Enter the data manually", "Use the file as reference"),
        )

    def find_template_match(self, parser_metadata: dict) -> TemplateMatch | None:
        """Find the structural template that best fits a regularly structured document.

        A document is regular if it has a header row, a consistent number of columns and at least one recognized
        format hint.

        Args:
            parser_metadata (dict): The metadata of the parser that read the document.

        Returns:
            TemplateMatch | None: The best matching template, or None.
        """
        if not self.enable_template_matching:
            return None
        headers = parser_metadata.get("headers") or []
        is_regular = (
            parser_metadata.get("has_headers", False)
            and parser_metadata.get("consistent_columns", True)
            and bool(parser_metadata.get("format_hints"))
        )
        if not is_regular or not headers:
            return None

        matches = [match for template in self.templates if (match := template.match(headers)) is not None]
        if not matches:
            return None
        return max(matches, key=lambda match: (match.score, len(match.field_mapping)))

    def execute_fallback_strategy(self, strategy: FallbackStrategy, context: RecoveryContext) -> RecoverySession:
        """Prepare the review step of a recovery strategy.

        Args:
            strategy (FallbackStrategy): The strategy to execute.
            context (RecoveryContext): The extraction to recover.

        Raises:
            ValueError: If the strategy has no recoverable type.

        Returns:
            RecoverySession: The session handed over to the reviewer.
        """
        recovery_id = f"recovery_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        attempt = RecoveryAttempt(strategy.type)
        self.recovery_attempts[recovery_id] = attempt
        logger.info("Executing fallback strategy %s (%s).", strategy.type, recovery_id)

        try:
            if strategy.type == FallbackType.PARTIAL_EXTRACTION:
                session = self._partial_extraction(recovery_id, context)
            elif strategy.type == FallbackType.GUIDED_CORRECTION:
                session = self._guided_correction(recovery_id, context)
            elif strategy.type == FallbackType.TEMPLATE_BASED:
                session = self._template_mapping(recovery_id, strategy, context)
            elif strategy.type == FallbackType.MANUAL_ENTRY:
                session = self._manual_entry(recovery_id, context)
            else:
                raise ValueError(f"Unknown fallback strategy: {strategy.type}")
        except ValueError as error:
            attempt.status = "failed"
            attempt.error = str(error)
            attempt.end_time = time.time()
            raise

        attempt.status = "completed" if session.success else "failed"
        attempt.end_time = time.time()
        return session

    def _partial_extraction(self, recovery_id: str, context: RecoveryContext) -> RecoverySession:
        layers = context.result.layers
        return RecoverySession(
            recovery_id=recovery_id,
            strategy=FallbackType.PARTIAL_EXTRACTION,
            success=True,
            data={
                "type": "partial_review",
                "filename": context.filename,
                "layers": [layer.to_json() for layer in layers],
                "confidence": context.result.confidence.score,
                "uncertain_fields": [
                    {"layer": index, "fields": fields}
                    for index, layer in enumerate(layers)
                    if (fields := uncertain_fields(layer))
                ],
                "suggested_actions": [
                    "Review the extracted layers for accuracy",
                    "Complete the missing materials",
                    "Verify the depth intervals against the original file",
                ],
            },
            next_steps=(
                "User reviews the partial data",
                "User completes the missing information",
                "System validates the completed data",
                "Data is saved if the validation passes",
            ),
        )

    def _guided_correction(self, recovery_id: str, context: RecoveryContext) -> RecoverySession:
        layers = context.result.layers
        corrections = prioritize_corrections(
            [build_correction(classification, layers) for classification in context.report.classifications]
        )
        return RecoverySession(
            recovery_id=recovery_id,
            strategy=FallbackType.GUIDED_CORRECTION,
            success=True,
            data={
                "type": "guided_correction",
                "filename": context.filename,
                "layers": [layer.to_json() for layer in layers],
                "confidence": context.result.confidence.score,
            },
            next_steps=(
                "User follows the correction guidance",
                "System validates each correction",
                "Confidence is updated after each edit",
                "Data is saved when the confidence threshold is met",
            ),
            corrections=tuple(corrections),
        )

    def _template_mapping(
        self, recovery_id: str, strategy: FallbackStrategy, context: RecoveryContext
    ) -> RecoverySession:
        template = strategy.template or self.find_template_match(context.result.metadata.get("source", {}))
        if template is None:
            return RecoverySession(
                recovery_id=recovery_id,
                strategy=FallbackType.TEMPLATE_BASED,
                success=False,
                data={"type": "template_mapping", "filename": context.filename, "error": "No suitable template found"},
            )
        return RecoverySession(
            recovery_id=recovery_id,
            strategy=FallbackType.TEMPLATE_BASED,
            success=True,
            data={
                "type": "template_mapping",
                "filename": context.filename,
                "template": template.to_json(),
                "layers": [layer.to_json() for layer in context.result.layers],
            },
            next_steps=(
                "User confirms or adjusts the column mapping",
                "Document is extracted again with the confirmed mapping",
                "User reviews the mapped layers",
                "Data is saved after the review",
            ),
        )

    @staticmethod
    def _manual_entry(recovery_id: str, context: RecoveryContext) -> RecoverySession:
        return RecoverySession(
            recovery_id=recovery_id,
            strategy=FallbackType.MANUAL_ENTRY,
            success=True,
            data={
                "type": "manual_entry",
                "filename": context.filename,
                "file_size": context.file_size,
                "guidance": {
                    "title": "Manual Data Entry",
                    "instructions": [
                        f"Use the original file '{context.filename}' as reference",
                        "Enter the layers from the top to the bottom of the borehole",
                        "Required fields: material, start depth and end depth (in feet)",
                        "Every layer is validated as you enter it",
                    ],
                    "tips": [
                        "The end depth of a layer is the start depth of the next one",
                        "Convert depths in meters to feet (1 m = 3.28084 ft)",
                    ],
                },
                "template": {
                    "depth_unit": "feet",
                    "layers": [],
                    "layer": {"material": "", "start_depth": None, "end_depth": None, "source": "fallback"},
                },
            },
            next_steps=(
                "User enters the data manually",
                "System validates the data as it is entered",
                "User can reference the original file",
                "Data is saved when complete and valid",
            ),
        )


def uncertain_fields(layer: ExtractedLayer) -> list[str]:
    """Fields of a layer the reviewer should check or complete."""
    fields = []
    if layer.material == UNIDENTIFIED_MATERIAL or layer.signal_kind in (SignalKind.COLOR_ONLY, SignalKind.NEITHER):
        fields.append("material")
    if layer.source == LayerSource.FALLBACK:
        fields.extend(["start_depth", "end_depth"])
    return fields


def suggested_action(message: str) -> str:
    lowered = message.lower()
    if "depth" in lowered and any(word in lowered for word in ("sequence", "gap", "overlap", "direction")):
        return "Check the depth sequence for gaps, overlaps and reversed values"
    if "material" in lowered:
        return "Verify the material names of the affected layers"
    if "depth" in lowered:
        return "Check the depth values against the original file"
    if "layer" in lowered:
        return "Review the boundaries of the affected layers"
    return "Review and correct the highlighted issue"


def build_correction(classification: ErrorClassification, layers: Sequence[ExtractedLayer]) -> Correction:
    """Turn a classified error into a correction, with the layers it affects.

    The affected layers are those whose material is named in the message, or, if none is named, the layers without
    high confidence.
    """
    lowered = classification.message.casefold()
    affected = [index for index, layer in enumerate(layers) if f'"{layer.material.casefold()}"' in lowered]
    if not affected:
        affected = [index for index, layer in enumerate(layers) if layer.confidence != ConfidenceLevel.HIGH]
    return Correction(
        type=classification.type,
        message=classification.message,
        severity=CORRECTION_SEVERITY.get(classification.type, "medium"),
        suggested_action=suggested_action(classification.message),
        affected_layers=tuple(affected),
    )


def prioritize_corrections(corrections: list[Correction]) -> list[Correction]:
    """Sort corrections by severity, then by the number of affected layers."""
    return sorted(
        corrections,
        key=lambda correction: (SEVERITY_RANK[correction.severity], len(correction.affected_layers)),
        reverse=True,
    )
