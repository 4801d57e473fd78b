"""Test suite for the error classifier module."""

import pytest

from strata_extraction.classification.error_classifier import ErrorClassifier, create_error_report
from strata_extraction.errors import ErrorKind, ErrorSeverity, ExtractionIssue


@pytest.fixture(scope="module")
def classifier() -> ErrorClassifier:
    """Error classifier with the default rule table."""
    return ErrorClassifier.from_config()


@pytest.mark.parametrize(
    "message,severity,allow_save",
    [
        ("Cannot read file log.xlsx: the file is corrupt", ErrorSeverity.FATAL, False),
        ("Unsupported file type: log.docx", ErrorSeverity.FATAL, False),
        ("No text content found in PDF (may be image-based)", ErrorSeverity.FATAL, False),
        ("Could not identify depth column in the spreadsheet", ErrorSeverity.FATAL, False),
        ("Ambiguous material: contains invalid characters", ErrorSeverity.RECOVERABLE, True),
        ("Partial extraction of page 2", ErrorSeverity.RECOVERABLE, True),
        ("Found 2 non-numeric depth values", ErrorSeverity.RECOVERABLE, False),
        ('Layer "Sand": start depth (10) > end depth (8)', ErrorSeverity.RECOVERABLE, False),
        ("Minor formatting issue in row 3", ErrorSeverity.WARNING, True),
    ],
)
def test_classify_error(classifier, message, severity, allow_save):  # noqa: D103
    classification = classifier.classify_error(message)
    assert classification.type == severity
    assert classification.allow_save is allow_save
    assert classification.should_abort is (severity == ErrorSeverity.FATAL)
    assert classification.force_review is (severity == ErrorSeverity.RECOVERABLE)
    assert classification.message == message


@pytest.mark.parametrize("message", [None, "", "   ", 42])
def test_invalid_messages_are_fatal(classifier, message):  # noqa: D103
    classification = classifier.classify_error(message)
    assert classification.type == ErrorSeverity.FATAL
    assert classification.should_abort


def test_classification_is_deterministic(classifier):  # noqa: D103
    message = "Depth sequence has inconsistent direction changes"
    first = classifier.classify_error(message)
    second = classifier.classify_error(message)
    assert (first.type, first.should_abort, first.allow_save) == (second.type, second.should_abort, second.allow_save)
    assert first == second


def test_classify_issue_uses_the_kind(classifier):  # noqa: D103
    classification = classifier.classify_issue(ExtractionIssue(ErrorKind.NO_DEPTHS_FOUND, "free text"))
    assert classification.type == ErrorSeverity.FATAL
    assert classification.kind == ErrorKind.NO_DEPTHS_FOUND
    assert classification.confidence_impact == 1.0

    classification = classifier.classify_issue(ExtractionIssue(ErrorKind.AMBIGUOUS_MATERIAL, "free text"))
    assert classification.type == ErrorSeverity.RECOVERABLE
    assert classification.allow_save


def test_classify_errors_aggregates_policies(classifier):  # noqa: D103
    report = classifier.classify_errors(
        [
            ExtractionIssue(ErrorKind.INVALID_DEPTH_SEQUENCE, "Found 1 non-numeric depth values"),
            "Minor formatting issue",
            ExtractionIssue(ErrorKind.FILE_CORRUPTED, "Cannot read file"),
        ]
    )
    assert report.overall_type == ErrorSeverity.FATAL
    assert report.should_abort, "One fatal error aborts the extraction"
    assert not report.allow_save
    assert report.force_review
    assert report.summary == {"fatal": 1, "recoverable": 1, "warning": 1}
    assert report.total_confidence_impact == 1.0, "The total impact is capped at 1"
    assert len(report.classifications) == 3


def test_classify_errors_without_errors(classifier):  # noqa: D103
    report = classifier.classify_errors([])
    assert report.overall_type == ErrorSeverity.WARNING
    assert report.allow_save
    assert not report.should_abort
    assert not report.force_review


def test_save_is_allowed_only_if_every_error_allows_it(classifier):  # noqa: D103
    report = classifier.classify_errors(["Ambiguous material name", "Minor formatting issue"])
    assert report.allow_save
    assert report.overall_type == ErrorSeverity.RECOVERABLE

    report = classifier.classify_errors(["Ambiguous material name", "Found 1 duplicate depth values overlap"])
    assert not report.allow_save


def test_create_error_report(classifier):  # noqa: D103
    report = create_error_report(classifier.classify_errors(["File is corrupted"]))
    assert report.title == "Extraction Failed"
    assert report.actions == ("Close", "Try Different File")
    assert not report.can_save

    report = create_error_report(classifier.classify_errors(["Found 1 non-numeric depth values"]))
    assert report.title == "Review Required"
    assert report.actions == ("Review Data", "Cancel")
    assert report.must_review

    report = create_error_report(classifier.classify_errors(["Minor formatting issue"]))
    assert report.title == "Extraction Complete with Warnings"
    assert report.actions == ("Save", "Review Data", "Cancel")
    assert report.can_save

    report = create_error_report(classifier.classify_errors([]))
    assert report.title == "Extraction Complete"
    assert report.error_counts == {"fatal": 0, "recoverable": 0, "warning": 0}


def test_validate_material(classifier):  # noqa: D103
    assert classifier.validate_material("Sandy Clay (weathered)").classifications == ()

    report = classifier.validate_material("")
    assert report.classifications[0].message == "Missing required field: material"
    assert report.overall_type == ErrorSeverity.RECOVERABLE
    assert not report.allow_save

    report = classifier.validate_material("x" * 101)
    assert report.classifications[0].message == "Invalid material: name too long (max 100 characters)"
    assert not report.allow_save

    report = classifier.validate_material("Clay $$")
    assert report.classifications[0].message == "Ambiguous material: contains invalid characters"
    assert report.allow_save
    assert report.force_review
