"""Coordinator of the extraction pipeline, from parsing to layer detection, scoring and recovery."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import PurePath

from strata_extraction.classification.error_classifier import ClassificationReport, ErrorClassifier
from strata_extraction.depth.normalizer import DepthNormalizer
from strata_extraction.errors import (
    ErrorKind,
    ExtractionCancelledError,
    ExtractionIssue,
    UnsupportedFileTypeError,
)
from strata_extraction.layers.confidence import ConfidenceScorer, check_layer_confidence
from strata_extraction.layers.layer import ExtractedLayer, LayerSource
from strata_extraction.layers.layer_detection import LayerDetector
from strata_extraction.parsers.document import DocumentInput, SourceDocument, resolve_filename
from strata_extraction.parsers.excel_parser import ExcelParser
from strata_extraction.parsers.pdf_parser import PdfParser
from strata_extraction.parsers.raw_extraction import RawExtraction
from strata_extraction.parsers.strategies import (
    AttemptRecord,
    ParseStrategy,
    excel_strategies,
    pdf_strategies,
    run_strategies,
)
from strata_extraction.recovery.fallback_manager import FallbackManager, RecoveryContext
from strata_extraction.result import ExtractionResult
from strata_extraction.settings import ExtractionSettings
from strata_extraction.utils.file_utils import read_params
from strata_extraction.validation.depth_recovery import DepthRecovery
from strata_extraction.validation.validation_service import ValidationService

logger = logging.getLogger(__name__)

SUPPORTED_FILE_TYPES = {"excel": (".xlsx", ".xls", ".csv"), "pdf": (".pdf",)}
VALIDATION_ERROR_KINDS = (ErrorKind.INVALID_DEPTH_VALUE, ErrorKind.INVALID_DEPTH_SEQUENCE, ErrorKind.LAYER_BOUNDARY)


@dataclass
class ExtractionState:
    """In-flight state of one extraction call."""

    attempt_log: list[AttemptRecord] = field(default_factory=list)
    issues: list[ExtractionIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


class StrataExtractor:
    """Extracts the strata layers of a borehole log from a spreadsheet or a PDF document.

    The extractor is the only entry point of the pipeline. It is reusable: the state of one call, recovery attempts
    included, is cleared at the start of the next one. Only the parser instances are shared between calls.
    """

    def __init__(
        self,
        settings: ExtractionSettings | None = None,
        excel_parser: ExcelParser | None = None,
        pdf_parser: PdfParser | None = None,
        normalizer: DepthNormalizer | None = None,
        validator: ValidationService | None = None,
        depth_recovery: DepthRecovery | None = None,
        detector: LayerDetector | None = None,
        classifier: ErrorClassifier | None = None,
        fallback_manager: FallbackManager | None = None,
    ):
        self.settings = settings or ExtractionSettings()
        self.excel_parser = excel_parser or ExcelParser.from_config()
        self.pdf_parser = pdf_parser or PdfParser.from_config()
        self.normalizer = normalizer or DepthNormalizer.from_config()
        self.validator = validator or ValidationService.from_config()
        self.depth_recovery = depth_recovery or DepthRecovery.from_params(read_params("validation_params.yml"))
        self.detector = detector or LayerDetector()
        self.scorer = ConfidenceScorer(
            self.settings.min_confidence_threshold, self.settings.high_confidence_threshold
        )
        self.classifier = classifier or ErrorClassifier.from_config()
        self.fallback_manager = fallback_manager or FallbackManager.from_config(self.settings)
        self.strategies: dict[str, list[ParseStrategy]] = {
            "excel": excel_strategies(self.excel_parser),
            "pdf": pdf_strategies(self.pdf_parser),
        }
        self.state = ExtractionState()

    def reset(self):
        """Clear the state of the previous call, including its recovery attempts."""
        self.state = ExtractionState()
        self.fallback_manager.reset()

    @staticmethod
    def detect_file_type(filename: str) -> str | None:
        """The file type handled by a parser, "excel" or "pdf", or None if the extension is not supported."""
        extension = PurePath(filename).suffix.lower()
        for file_type, extensions in SUPPORTED_FILE_TYPES.items():
            if extension in extensions:
                return file_type
        return None

    def is_file_supported(self, filename: str) -> bool:
        return self.detect_file_type(filename) is not None

    @staticmethod
    def get_supported_file_types() -> dict[str, list[str]]:
        return {file_type: list(extensions) for file_type, extensions in SUPPORTED_FILE_TYPES.items()}

    def extract_from_file(
        self,
        file: DocumentInput,
        filename: str | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ) -> ExtractionResult:
        """Extract the strata layers of a document.

        Args:
            file (DocumentInput): The document, as a path, raw bytes or a binary stream.
            filename (str | None): Name of the document. Required for bytes and unnamed streams.
            should_cancel (Callable[[], bool] | None): Checked before every parse attempt and between stages.

        Raises:
            UnsupportedFileTypeError: If the file extension is not supported. No fallback is attempted.
            ExtractionCancelledError: If `should_cancel` returns True.

        Returns:
            ExtractionResult: The layers in feet with confidence, errors, warnings and, if the extraction failed or
                is uncertain, a fallback strategy with its recovery session.
        """
        start_time = time.perf_counter()
        self.reset()

        name = resolve_filename(file, filename)
        file_type = self.detect_file_type(name)
        if file_type is None:
            logger.error("Unsupported file type: %s", name)
            raise UnsupportedFileTypeError(name)

        document = SourceDocument.load(file, name)
        logger.info("Extracting strata from %s (%s, %s bytes).", name, file_type, document.size)
        self.state.metadata.update(
            {
                "filename": name,
                "file_type": file_type,
                "file_size": document.size,
                "depth_unit": self.normalizer.canonical_unit,
            }
        )

        raw = run_strategies(self.strategies[file_type], document, self.state.attempt_log, should_cancel)
        if raw is None:
            for attempt in self.state.attempt_log:
                if attempt.status == "failed":
                    self.state.issues.append(
                        ExtractionIssue(
                            attempt.kind or ErrorKind.CRITICAL_PARSING_ERROR, f"{attempt.method}: {attempt.error}"
                        )
                    )
            if not self.state.issues:
                self.state.issues.append(
                    ExtractionIssue(ErrorKind.CRITICAL_PARSING_ERROR, "All extraction methods failed")
                )
            result = ExtractionResult.failed(self.state.issues, self.state.warnings)
            return self._finish(result, document, start_time)

        _check_cancel(should_cancel, "depth normalization")
        raw = self._normalize_depths(raw)

        if self.settings.auto_validate:
            _check_cancel(should_cancel, "depth validation")
            raw = self._validate_depths(raw)

        _check_cancel(should_cancel, "layer detection")
        layers = self._detect_layers(raw, file_type)

        if self.settings.auto_validate and layers:
            boundaries = self.validator.validate_layer_boundaries(layers)
            self.state.issues.extend(ExtractionIssue(ErrorKind.LAYER_BOUNDARY, error) for error in boundaries.errors)
            self.state.warnings.extend(boundaries.warnings)

        _check_cancel(should_cancel, "confidence scoring")
        layer_check = check_layer_confidence(layers)
        if layers and layer_check.warning:
            self.state.warnings.append(layer_check.warning)
        validation_errors = sum(1 for issue in self.state.issues if issue.kind in VALIDATION_ERROR_KINDS)
        score = self.scorer.score(
            layers,
            validation_passed=validation_errors == 0,
            validation_error_count=validation_errors,
            parser_metadata=raw.metadata,
            error_count=len(self.state.issues),
        )
        self.state.metadata.update(
            {
                "total_depth": max((layer.end_depth for layer in layers), default=None),
                "source": raw.metadata,
                "confidence_analysis": {**score.to_json(), "layer_confidence": layer_check.to_json()},
            }
        )

        result = ExtractionResult(
            success=False,
            data=tuple(layers) if layers else None,
            confidence=score,
            issues=tuple(self.state.issues),
            warnings=tuple(self.state.warnings),
        )
        return self._finish(result, document, start_time)

    def _normalize_depths(self, raw: RawExtraction) -> RawExtraction:
        """Convert all depths and thicknesses to feet.

        Unparseable and out-of-range depths are replaced by None, so that the depth validation can report and
        possibly repair them.
        """
        resolution = self.normalizer.normalize_unit(raw.depth_unit)
        self.state.warnings.extend(resolution.warnings)
        self.state.metadata["source_depth_unit"] = resolution.unit

        batch = self.normalizer.normalize_batch(raw.depths, resolution.unit)
        depths = []
        for item in batch.results:
            if item.success:
                depths.append(item.normalized_depth)
                self.state.warnings.extend(f"Item {item.index}: {warning}" for warning in item.warnings)
                continue
            depths.append(None)
            if item.out_of_range:
                self.state.issues.extend(
                    ExtractionIssue(ErrorKind.INVALID_DEPTH_VALUE, f"Invalid depth value at item {item.index}: {e}")
                    for e in item.errors
                )
            elif item.original_depth is not None:
                self.state.warnings.extend(f"Item {item.index}: {error}" for error in item.errors)

        thicknesses = raw.thicknesses
        if thicknesses is not None:
            thicknesses = [
                round(self.normalizer.unit_table.to_canonical(thickness, resolution.unit), 2)
                if thickness is not None
                else None
                for thickness in thicknesses
            ]
        return replace(raw, depths=depths, thicknesses=thicknesses, depth_unit=self.normalizer.canonical_unit)

    def _validate_depths(self, raw: RawExtraction) -> RawExtraction:
        """Validate the depth sequence, repairing it if possible."""
        report = self.validator.validate_depth_sequence(raw.depths)
        self.state.warnings.extend(report.warnings)

        if not report.valid:
            outcome = self.depth_recovery.recover(raw, report)
            if outcome is not None:
                revalidated = self.validator.validate_depth_sequence(outcome.raw.depths)
                if revalidated.valid:
                    logger.info("Depth data was automatically corrected: %s", ", ".join(outcome.actions))
                    raw = outcome.raw
                    report = revalidated
                    self.state.warnings.extend(outcome.warnings)
                    self.state.warnings.append("Depth data was automatically corrected")
            if not report.valid:
                self.state.issues.extend(
                    ExtractionIssue(ErrorKind.INVALID_DEPTH_SEQUENCE, error) for error in report.errors
                )

        consistency = self.validator.check_depth_interval_consistency(raw.depths)
        self.state.metadata["depth_resolution"] = round(consistency.mode, 2) if consistency.mode else None
        if consistency.consistent and consistency.mode:
            missing = self.validator.detect_missing_depths(raw.depths, consistency.mode)
            if missing.missing_depths:
                listed = ", ".join(f"{depth:g}" for depth in missing.missing_depths)
                self.state.warnings.append(f"Possible missing depths in the regular sequence: {listed}")
        return raw

    def _detect_layers(self, raw: RawExtraction, file_type: str) -> list[ExtractedLayer]:
        source = LayerSource.EXCEL_IMPORT if file_type == "excel" else LayerSource.PDF_IMPORT
        layers = self.detector.detect(raw, source)
        if layers:
            return layers

        layers = self.detector.detect_from_colors(raw) or self.detector.detect_from_thickness(raw)
        if layers:
            self.state.warnings.append("Used alternative layer detection method")
        else:
            self.state.issues.append(
                ExtractionIssue(ErrorKind.NO_LAYERS_DETECTED, "No layers could be detected in the extracted data")
            )
        return layers

    def _finish(self, result: ExtractionResult, document: SourceDocument, start_time: float) -> ExtractionResult:
        """Classify the errors, decide on success and hand failed or uncertain extractions to the fallback manager."""
        report = self.classifier.classify_errors(result.issues)
        success = (
            bool(result.layers)
            and not report.should_abort
            and report.allow_save
            and result.confidence.score >= self.settings.min_confidence_threshold
        )
        metadata = self.state.metadata
        metadata["extraction_attempts"] = [attempt.to_json() for attempt in self.state.attempt_log]
        result = replace(result, success=success, classification=report, metadata=metadata)

        if not success:
            result = self._apply_fallback(result, report, document)

        metadata["extraction_timestamp"] = datetime.now(timezone.utc).isoformat()
        metadata["processing_time_ms"] = round((time.perf_counter() - start_time) * 1000)
        logger.info(
            "Extraction of %s finished: success=%s, %s layers, confidence %s.",
            document.filename,
            result.success,
            len(result.layers),
            result.confidence.score,
        )
        return result

    def _apply_fallback(
        self, result: ExtractionResult, report: ClassificationReport, document: SourceDocument
    ) -> ExtractionResult:
        strategy = self.fallback_manager.determine_fallback_strategy(result, report)
        session = None
        if strategy.can_recover:
            context = RecoveryContext(document.filename, document.size, result, report)
            session = self.fallback_manager.execute_fallback_strategy(strategy, context)
        logger.info("Fallback strategy for %s: %s", document.filename, strategy.type)

        result.metadata.update(
            {
                "fallback_used": True,
                "fallback_strategy": strategy.type.value if strategy.type else None,
                "fallback_success": bool(session and session.success),
            }
        )
        return replace(result, fallback_strategy=strategy, user_guidance=strategy.user_guidance, recovery=session)

    @staticmethod
    def update_confidence_for_edit(layer: ExtractedLayer) -> ExtractedLayer:
        """A layer edited by the user is trusted: the copy has high confidence and is marked as edited."""
        return layer.with_user_edit()

    def apply_layer_edit(self, result: ExtractionResult, index: int, layer: ExtractedLayer) -> ExtractionResult:
        """Replace one layer of a result by its edited version.

        The original result is left untouched. The boundaries are validated again, and the confidence, the error
        classification and the success flag are derived anew. A result that succeeds after the edit drops its fallback
        strategy, guidance and recovery session.

        Args:
            result (ExtractionResult): The reviewed result.
            index (int): Index of the edited layer.
            layer (ExtractedLayer): The layer as edited by the user.

        Returns:
            ExtractionResult: A new result containing the edited layer.
        """
        layers = list(result.layers)
        layers[index] = self.update_confidence_for_edit(layer)

        boundaries = self.validator.validate_layer_boundaries(layers)
        issues = [issue for issue in result.issues if issue.kind != ErrorKind.LAYER_BOUNDARY]
        issues.extend(ExtractionIssue(ErrorKind.LAYER_BOUNDARY, error) for error in boundaries.errors)
        validation_errors = sum(1 for issue in issues if issue.kind in VALIDATION_ERROR_KINDS)
        score = self.scorer.score(
            layers,
            validation_passed=validation_errors == 0,
            validation_error_count=validation_errors,
            parser_metadata=result.metadata.get("source"),
            error_count=len(issues),
        )
        report = self.classifier.classify_errors(issues)
        success = not report.should_abort and report.allow_save and score.score >= self.scorer.min_confidence_threshold
        fallback = {} if not success else {"fallback_strategy": None, "user_guidance": None, "recovery": None}
        return replace(
            result,
            **fallback,
            success=success,
            data=tuple(layers),
            confidence=score,
            issues=tuple(issues),
            classification=report,
            metadata={**result.metadata, "edited": True},
        )

    def validate_for_save(self, layers: ExtractionResult | Sequence) -> list[str]:
        """Check layers before they are saved.

        Args:
            layers (ExtractionResult | Sequence): A result, or layers as objects or mappings, e.g. from the review.

        Returns:
            list[str]: The problems preventing the save; empty if the layers can be saved.
        """
        if isinstance(layers, ExtractionResult):
            layers = layers.layers
        if not layers:
            return ["No layers to save"]

        errors = []
        for index, layer in enumerate(layers):
            material = layer.get("material") if isinstance(layer, Mapping) else getattr(layer, "material", None)
            report = self.classifier.validate_material(material)
            errors.extend(f"Layer {index + 1}: {classification.message}" for classification in report.classifications)
        errors.extend(self.validator.validate_layer_boundaries(layers).errors)
        return errors


def _check_cancel(should_cancel: Callable[[], bool] | None, stage: str):
    if should_cancel is not None and should_cancel():
        logger.info("Extraction cancelled before %s.", stage)
        raise ExtractionCancelledError(stage)
