"""Error taxonomy of the extraction pipeline.

Errors are tagged with an `ErrorKind` where they are raised or detected. The kind carries the severity and the
save policy, so that the error classifier does not need to interpret the message text for errors produced inside
this package. Messages arriving without a kind are classified by the text rules of the error classifier.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorSeverity(str, Enum):
    """Severity of an extraction error."""

    FATAL = "fatal"
    RECOVERABLE = "recoverable"
    WARNING = "warning"


class ErrorKind(Enum):
    """Kinds of errors produced by the parsers, the validators and the coordinator.

    Each member is bound to a severity and to whether the extracted data may still be saved.
    """

    FILE_CORRUPTED = ("file_corrupted", ErrorSeverity.FATAL, False)
    UNSUPPORTED_FILE_TYPE = ("unsupported_file_type", ErrorSeverity.FATAL, False)
    NO_TEXT_CONTENT = ("no_text_content", ErrorSeverity.FATAL, False)
    NO_DEPTHS_FOUND = ("no_depths_found", ErrorSeverity.FATAL, False)
    NO_MATERIALS_FOUND = ("no_materials_found", ErrorSeverity.FATAL, False)
    CRITICAL_PARSING_ERROR = ("critical_parsing_error", ErrorSeverity.FATAL, False)
    INVALID_DEPTH_VALUE = ("invalid_depth_value", ErrorSeverity.RECOVERABLE, False)
    INVALID_DEPTH_SEQUENCE = ("invalid_depth_sequence", ErrorSeverity.RECOVERABLE, False)
    LAYER_BOUNDARY = ("layer_boundary", ErrorSeverity.RECOVERABLE, False)
    NO_LAYERS_DETECTED = ("no_layers_detected", ErrorSeverity.RECOVERABLE, False)
    AMBIGUOUS_MATERIAL = ("ambiguous_material", ErrorSeverity.RECOVERABLE, True)
    PARTIAL_EXTRACTION = ("partial_extraction", ErrorSeverity.RECOVERABLE, True)
    UNCLASSIFIED = ("unclassified", ErrorSeverity.WARNING, True)

    def __init__(self, label: str, severity: ErrorSeverity, allow_save: bool):
        self.label = label
        self.severity = severity
        self.allow_save = allow_save


@dataclass(frozen=True)
class ExtractionIssue:
    """An error message tagged with its kind."""

    kind: ErrorKind
    message: str

    def to_json(self) -> dict:
        """Convert the issue to a JSON serializable format."""
        return {"kind": self.kind.label, "severity": self.kind.severity.value, "message": self.message}


class StrataExtractionError(Exception):
    """Base class of the errors raised by the extraction pipeline."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.CRITICAL_PARSING_ERROR):
        super().__init__(message)
        self.message = message
        self.kind = kind

    def to_issue(self) -> ExtractionIssue:
        """Convert the error to a tagged issue."""
        return ExtractionIssue(self.kind, self.message)


class ParseError(StrataExtractionError):
    """Raised when a document cannot be opened, decoded, or fails the readability check."""


class StrategyNotApplicableError(ParseError):
    """Raised when a parse strategy does not apply to a document, e.g. there is no alternative sheet."""


class UnsupportedFileTypeError(StrataExtractionError):
    """Raised when the file extension is not handled by any parser."""

    def __init__(self, filename: str):
        super().__init__(f"Unsupported file type: {filename}", ErrorKind.UNSUPPORTED_FILE_TYPE)
        self.filename = filename


class ExtractionCancelledError(StrataExtractionError):
    """Raised when the caller cancels an extraction between two stages."""

    def __init__(self, stage: str):
        super().__init__(f"Extraction cancelled before {stage}")
        self.stage = stage
