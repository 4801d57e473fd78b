"""Test suite for the extractor module."""

import json
import zipfile
from dataclasses import replace
from io import BytesIO

import pytest

from strata_extraction import StrataExtractor
from strata_extraction.errors import ErrorKind, ExtractionCancelledError, UnsupportedFileTypeError
from strata_extraction.layers.layer import ConfidenceLevel, ExtractedLayer, LayerSource
from strata_extraction.recovery.fallback_manager import FallbackType
from strata_extraction.settings import ExtractionSettings


def _summary(result):
    return [(layer.material, layer.start_depth, layer.end_depth) for layer in result.layers]


def test_extract_from_workbook(extractor, strata_workbook):  # noqa: D103
    result = extractor.extract_from_file(strata_workbook, "log.xlsx")
    assert result.success
    assert _summary(result) == [("Clay", 0, 10), ("Sand", 10, 20)]
    assert result.layers[0].confidence == ConfidenceLevel.HIGH
    assert all(layer.source == LayerSource.EXCEL_IMPORT for layer in result.layers)
    assert result.confidence.score == 1.0
    assert result.errors == ()
    assert result.fallback_strategy is None
    assert result.metadata["filename"] == "log.xlsx"
    assert result.metadata["depth_unit"] == "feet"
    assert result.metadata["total_depth"] == 20
    assert result.metadata["extraction_attempts"] == [
        {"method": "primary_excel", "status": "success", "error": None, "kind": None}
    ]
    assert isinstance(result.metadata["processing_time_ms"], int)
    json.dumps(result.to_json())


def test_extract_from_path(extractor, strata_workbook, tmp_path):  # noqa: D103
    path = tmp_path / "B-12.xlsx"
    path.write_bytes(strata_workbook)
    result = extractor.extract_from_file(path)
    assert result.success
    assert result.metadata["filename"] == "B-12.xlsx"


def test_depths_in_meters_are_converted(extractor, xlsx_bytes):  # noqa: D103
    content = xlsx_bytes({"Log": [["Depth (m)", "Material"], [0, "Clay"], [1, "Sand"], [2, None]]})
    result = extractor.extract_from_file(content, "log.xlsx")
    assert _summary(result) == [("Clay", 0, 3.28), ("Sand", 3.28, 6.56)]
    assert result.metadata["source_depth_unit"] == "meters"
    assert result.metadata["depth_unit"] == "feet"


def test_extract_from_pdf(extractor, strata_pdf):  # noqa: D103
    result = extractor.extract_from_file(strata_pdf, "log.pdf")
    assert result.success
    assert _summary(result) == [("Clay", 0, 5), ("Sandy Clay", 5, 10), ("Sand", 10, 20)]
    assert all(layer.source == LayerSource.PDF_IMPORT for layer in result.layers)
    assert all(layer.original_color is None for layer in result.layers)


def test_unsupported_file_type(extractor):  # noqa: D103
    assert extractor.detect_file_type("log.docx") is None
    assert not extractor.is_file_supported("log.docx")
    assert extractor.is_file_supported("LOG.XLSX")
    with pytest.raises(UnsupportedFileTypeError) as excinfo:
        extractor.extract_from_file(b"content", "log.docx")
    assert excinfo.value.kind == ErrorKind.UNSUPPORTED_FILE_TYPE


def test_supported_file_types():  # noqa: D103
    assert StrataExtractor.get_supported_file_types() == {"excel": [".xlsx", ".xls", ".csv"], "pdf": [".pdf"]}


def test_corrupt_file_is_not_recovered(extractor):  # noqa: D103
    result = extractor.extract_from_file(b"garbage", "log.xlsx")
    assert not result.success
    assert result.data is None
    assert result.confidence.score == 0.0
    assert all(issue.kind == ErrorKind.FILE_CORRUPTED for issue in result.issues)
    assert result.errors[0].startswith("primary_excel: Cannot read file log.xlsx")
    assert result.classification.should_abort
    assert result.fallback_strategy.type is None
    assert result.recovery is None
    assert result.metadata["fallback_used"]
    assert result.metadata["fallback_strategy"] is None
    assert not result.metadata["fallback_success"]
    json.dumps(result.to_json())


def test_invalid_depth_triggers_partial_extraction(extractor, xlsx_bytes):  # noqa: D103
    rows = [["Depth", "Material"], [0, "Clay"], [5, "Clay"], [10, "Sand"], [2000, "Gravel"], [20, None]]
    result = extractor.extract_from_file(xlsx_bytes({"Log": rows}), "log.xlsx")
    assert not result.success, "Invalid depth values block the save"
    assert [issue.kind for issue in result.issues] == [ErrorKind.INVALID_DEPTH_VALUE]
    assert "Depth data was automatically corrected" in result.warnings
    assert _summary(result) == [("Clay", 0, 10), ("Sand", 10, 15), ("Gravel", 15, 20)]
    assert result.fallback_strategy.type == FallbackType.PARTIAL_EXTRACTION
    assert result.recovery.data["type"] == "partial_review"
    assert result.metadata["fallback_strategy"] == "partial_extraction"
    assert result.metadata["fallback_success"]
    assert result.recovery.recovery_id in extractor.fallback_manager.recovery_attempts
    json.dumps(result.to_json())


def test_auto_validation_can_be_disabled(xlsx_bytes):  # noqa: D103
    extractor = StrataExtractor(ExtractionSettings(auto_validate=False))
    rows = [["Depth", "Material"], [0, "Clay"], [5, "Clay"], [10, "Sand"], [2000, "Gravel"], [20, None]]
    result = extractor.extract_from_file(xlsx_bytes({"Log": rows}), "log.xlsx")
    assert "Depth data was automatically corrected" not in result.warnings
    assert _summary(result) == [("Clay", 0, 10), ("Sand", 10, 20)], "Points without depth are ignored"
    assert [issue.kind for issue in result.issues] == [ErrorKind.INVALID_DEPTH_VALUE]
    assert "depth_resolution" not in result.metadata


def test_cancellation(extractor, strata_workbook):  # noqa: D103
    with pytest.raises(ExtractionCancelledError) as excinfo:
        extractor.extract_from_file(strata_workbook, "log.xlsx", should_cancel=lambda: True)
    assert excinfo.value.stage == "primary_excel"

    calls = []

    def cancel_after_parsing():
        calls.append(None)
        return len(calls) > 1

    with pytest.raises(ExtractionCancelledError) as excinfo:
        extractor.extract_from_file(strata_workbook, "log.xlsx", should_cancel=cancel_after_parsing)
    assert excinfo.value.stage == "depth normalization"


def test_state_is_cleared_between_calls(extractor, strata_workbook, xlsx_bytes):  # noqa: D103
    failed = extractor.extract_from_file(b"garbage", "log.xlsx")
    assert failed.errors
    result = extractor.extract_from_file(strata_workbook, "log.xlsx")
    assert result.errors == (), "Errors of the previous call are not carried over"
    assert len(result.metadata["extraction_attempts"]) == 1
    assert extractor.fallback_manager.recovery_attempts == {}

    rows = [["Depth", "Material"], [0, "Clay"], [5, "Clay"], [10, "Sand"], [2000, "Gravel"], [20, None]]
    for _ in range(3):
        uncertain = extractor.extract_from_file(xlsx_bytes({"Log": rows}), "log.xlsx")
        assert list(extractor.fallback_manager.recovery_attempts) == [uncertain.recovery.recovery_id], (
            "Only the recovery session of the last call is registered"
        )
    extractor.extract_from_file(b"garbage", "log.xlsx")
    assert extractor.fallback_manager.recovery_attempts == {}

    extractor.reset()
    assert extractor.state.issues == []
    assert extractor.fallback_manager.recovery_attempts == {}


def test_apply_layer_edit(extractor, strata_workbook):  # noqa: D103
    result = extractor.extract_from_file(strata_workbook, "log.xlsx")
    edited_layer = ExtractedLayer("Silty clay", 0, 10, ConfidenceLevel.LOW, LayerSource.EXCEL_IMPORT)
    edited = extractor.apply_layer_edit(result, 0, edited_layer)

    assert edited.layers[0].material == "Silty clay"
    assert edited.layers[0].confidence == ConfidenceLevel.HIGH, "Edited layers have high confidence"
    assert edited.layers[0].user_edited
    assert edited.metadata["edited"]
    assert edited.success
    assert result.layers[0].material == "Clay", "The original result is not modified"
    assert "edited" not in result.metadata


def test_apply_layer_edit_with_overlap(extractor, strata_workbook):  # noqa: D103
    result = extractor.extract_from_file(strata_workbook, "log.xlsx")
    edited = extractor.apply_layer_edit(
        result, 0, ExtractedLayer("Clay", 0, 12, ConfidenceLevel.HIGH, LayerSource.EXCEL_IMPORT)
    )
    assert edited.issues == (), "Overlapping layers are warnings, not errors"
    assert edited.success


def test_update_confidence_for_edit():  # noqa: D103
    layer = ExtractedLayer("Clay", 0, 5, ConfidenceLevel.MEDIUM, LayerSource.PDF_IMPORT)
    edited = StrataExtractor.update_confidence_for_edit(layer)
    assert edited.confidence == ConfidenceLevel.HIGH
    assert edited.user_edited


def test_validate_for_save(extractor, strata_workbook):  # noqa: D103
    assert extractor.validate_for_save([]) == ["No layers to save"]
    assert extractor.validate_for_save(extractor.extract_from_file(strata_workbook, "log.xlsx")) == []

    errors = extractor.validate_for_save(
        [
            {"material": "Clay $$", "start_depth": 0, "end_depth": 5},
            {"material": "", "start_depth": 5, "end_depth": 10},
            {"material": "Silt", "start_depth": 12, "end_depth": 11},
        ]
    )
    assert errors == [
        "Layer 1: Ambiguous material: contains invalid characters",
        "Layer 2: Missing required field: material",
        'Layer "Silt": start depth (12) > end depth (11)',
    ]


def test_corrupt_workbook_xml(extractor):  # noqa: D103
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("[Content_Types].xml", "<bad")
    result = extractor.extract_from_file(buffer.getvalue(), "log.xlsx")
    assert not result.success
    assert [attempt["status"] for attempt in result.metadata["extraction_attempts"]] == ["failed"] * 3
    assert all(issue.kind == ErrorKind.FILE_CORRUPTED for issue in result.issues)
    assert result.classification.should_abort


def test_successful_edit_clears_fallback(extractor, strata_workbook, xlsx_bytes):  # noqa: D103
    rows = [["Depth", "Material"], [0, "Clay"], [5, "Clay"], [10, "Sand"], [2000, "Gravel"], [20, None]]
    partial = extractor.extract_from_file(xlsx_bytes({"Log": rows}), "log.xlsx")
    edited_partial = extractor.apply_layer_edit(partial, 0, partial.layers[0])
    assert not edited_partial.success, "Invalid depth values still block the save"
    assert edited_partial.fallback_strategy == partial.fallback_strategy
    assert edited_partial.user_guidance == partial.user_guidance
    assert edited_partial.recovery == partial.recovery

    clean = extractor.extract_from_file(strata_workbook, "log.xlsx")
    pending = replace(
        clean,
        success=False,
        fallback_strategy=partial.fallback_strategy,
        user_guidance=partial.user_guidance,
        recovery=partial.recovery,
    )
    edited = extractor.apply_layer_edit(pending, 1, pending.layers[1])
    assert edited.success
    assert edited.fallback_strategy is None
    assert edited.user_guidance is None
    assert edited.recovery is None
    assert edited.to_json()["recovery"] is None
