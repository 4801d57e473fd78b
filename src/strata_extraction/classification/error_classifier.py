"""Classification of extraction errors into a severity taxonomy with a save, abort and review policy."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from strata_extraction.errors import ErrorKind, ErrorSeverity, ExtractionIssue
from strata_extraction.utils.file_utils import read_params

logger = logging.getLogger(__name__)

MAX_MATERIAL_LENGTH = 100
VALID_MATERIAL_CHARACTERS = re.compile(r"^[\w\s\-.,()/]+$")


@dataclass(frozen=True)
class ErrorClassification:
    """Severity and policy of a single error."""

    type: ErrorSeverity
    should_abort: bool
    allow_save: bool
    force_review: bool
    reason: str
    confidence_impact: float
    message: str
    kind: ErrorKind | None = None

    def to_json(self) -> dict:
        """Convert the classification to a JSON serializable format."""
        return {
            "type": self.type.value,
            "should_abort": self.should_abort,
            "allow_save": self.allow_save,
            "force_review": self.force_review,
            "reason": self.reason,
            "confidence_impact": self.confidence_impact,
            "message": self.message,
            "kind": self.kind.label if self.kind else None,
        }


@dataclass(frozen=True)
class ClassificationReport:
    """Aggregated classification of all errors of an extraction.

    `should_abort` and `force_review` are true if any error sets them, `allow_save` only if no error forbids saving.
    """

    classifications: tuple[ErrorClassification, ...]
    overall_type: ErrorSeverity
    should_abort: bool
    allow_save: bool
    force_review: bool
    total_confidence_impact: float
    summary: dict[str, int]

    def to_json(self) -> dict:
        """Convert the report to a JSON serializable format."""
        return {
            "overall_type": self.overall_type.value,
            "should_abort": self.should_abort,
            "allow_save": self.allow_save,
            "force_review": self.force_review,
            "total_confidence_impact": self.total_confidence_impact,
            "summary": dict(self.summary),
            "classifications": [classification.to_json() for classification in self.classifications],
        }


@dataclass(frozen=True)
class ErrorReport:
    """User-facing summary of a classification report."""

    title: str
    message: str
    actions: tuple[str, ...]
    severity: ErrorSeverity
    can_save: bool
    must_review: bool
    should_abort: bool
    error_counts: dict[str, int]

    def to_json(self) -> dict:
        """Convert the report to a JSON serializable format."""
        return {
            "title": self.title,
            "message": self.message,
            "actions": list(self.actions),
            "severity": self.severity.value,
            "can_save": self.can_save,
            "must_review": self.must_review,
            "should_abort": self.should_abort,
            "error_counts": dict(self.error_counts),
        }


@dataclass(frozen=True)
class ClassificationRule:
    """A pattern on the lower-cased message, with the severity it implies."""

    pattern: re.Pattern
    severity: ErrorSeverity
    allow_save: bool
    reason: str


class ErrorClassifier:
    """Maps errors to severities and policies.

    Errors tagged with an `ErrorKind` are classified from their kind. Untagged messages, e.g. messages coming from a
    third-party library, are classified by a table of text rules evaluated in order; messages matching no rule are
    warnings. The classification is deterministic.
    """

    def __init__(self, rules: Sequence[ClassificationRule], confidence_impact: dict[ErrorSeverity, float]):
        self.rules = tuple(rules)
        self.confidence_impact = dict(confidence_impact)

    @classmethod
    def from_params(cls, params: dict) -> ErrorClassifier:
        """Create the classifier from the `error_classification_params.yml` parameters."""
        rules = [
            ClassificationRule(
                pattern=re.compile(rule["pattern"]),
                severity=ErrorSeverity(rule["severity"]),
                allow_save=bool(rule.get("allow_save", rule["severity"] == ErrorSeverity.WARNING.value)),
                reason=rule["reason"],
            )
            for rule in params["rules"]
        ]
        impact = {ErrorSeverity(severity): float(value) for severity, value in params["confidence_impact"].items()}
        return cls(rules, impact)

    @classmethod
    def from_config(cls, config_filename: str = "error_classification_params.yml") -> ErrorClassifier:
        return cls.from_params(read_params(config_filename))

    def _classification(
        self, severity: ErrorSeverity, allow_save: bool, reason: str, message: str, kind: ErrorKind | None = None
    ) -> ErrorClassification:
        is_fatal = severity == ErrorSeverity.FATAL
        return ErrorClassification(
            type=severity,
            should_abort=is_fatal,
            allow_save=allow_save and not is_fatal,
            force_review=severity == ErrorSeverity.RECOVERABLE,
            reason=reason,
            confidence_impact=self.confidence_impact.get(severity, 0.0),
            message=message,
            kind=kind,
        )

    def classify_error(self, message: object) -> ErrorClassification:
        """Classify an untagged error message.

        Args:
            message (object): The error message. Anything other than a non-empty string is classified as fatal.

        Returns:
            ErrorClassification: The classification of the message.
        """
        if not isinstance(message, str) or not message.strip():
            return self._classification(ErrorSeverity.FATAL, False, "Invalid error message", str(message))

        lowered = message.lower()
        for rule in self.rules:
            if rule.pattern.search(lowered):
                return self._classification(rule.severity, rule.allow_save, rule.reason, message)
        return self._classification(ErrorSeverity.WARNING, True, "Minor issue, extraction can continue", message)

    def classify_issue(self, issue: ExtractionIssue) -> ErrorClassification:
        """Classify a tagged issue from its kind."""
        kind = issue.kind
        return self._classification(kind.severity, kind.allow_save, kind.label.replace("_", " "), issue.message, kind)

    def classify_errors(self, errors: Sequence[str | ExtractionIssue]) -> ClassificationReport:
        """Classify all errors of an extraction and aggregate their policies.

        Args:
            errors (Sequence[str | ExtractionIssue]): Tagged issues and untagged messages.

        Returns:
            ClassificationReport: The individual classifications and the aggregated policy.
        """
        classifications = tuple(
            self.classify_issue(error) if isinstance(error, ExtractionIssue) else self.classify_error(error)
            for error in errors
        )
        summary = {
            severity.value: sum(1 for classification in classifications if classification.type == severity)
            for severity in ErrorSeverity
        }

        if summary[ErrorSeverity.FATAL.value]:
            overall_type = ErrorSeverity.FATAL
        elif summary[ErrorSeverity.RECOVERABLE.value]:
            overall_type = ErrorSeverity.RECOVERABLE
        else:
            overall_type = ErrorSeverity.WARNING

        return ClassificationReport(
            classifications=classifications,
            overall_type=overall_type,
            should_abort=any(classification.should_abort for classification in classifications),
            allow_save=all(classification.allow_save for classification in classifications),
            force_review=any(classification.force_review for classification in classifications),
            total_confidence_impact=min(sum(c.confidence_impact for c in classifications), 1.0),
            summary=summary,
        )

    def validate_material(self, material: object) -> ClassificationReport:
        """Check a material name, e.g. one entered by a user, and classify the problems found.

        Args:
            material (object): The material name.

        Returns:
            ClassificationReport: The classified problems; empty if the name is fine.
        """
        errors = []
        if not isinstance(material, str) or not material.strip():
            errors.append("Missing required field: material")
        elif len(material.strip()) > MAX_MATERIAL_LENGTH:
            errors.append(f"Invalid material: name too long (max {MAX_MATERIAL_LENGTH} characters)")
        elif not VALID_MATERIAL_CHARACTERS.match(material.strip()):
            errors.append("Ambiguous material: contains invalid characters")
        return self.classify_errors(errors)


def create_error_report(report: ClassificationReport) -> ErrorReport:
    """Summarize a classification report for the user.

    Args:
        report (ClassificationReport): The classification report.

    Returns:
        ErrorReport: Title, message and the actions offered to the user.
    """
    if report.overall_type == ErrorSeverity.FATAL:
        title = "Extraction Failed"
        message = "Critical errors prevent data extraction. Please check the file and try again."
        actions = ("Close", "Try Different File")
    elif report.overall_type == ErrorSeverity.RECOVERABLE:
        title = "Review Required"
        message = "Data quality issues detected. Please review and correct the extracted data before saving."
        actions = ("Review Data", "Cancel")
    elif report.classifications:
        title = "Extraction Complete with Warnings"
        message = "Minor issues detected but extraction was successful. You may save or review the data."
        actions = ("Save", "Review Data", "Cancel")
    else:
        title = "Extraction Complete"
        message = "The data was extracted without errors."
        actions = ("Save", "Review Data")

    return ErrorReport(
        title=title,
        message=message,
        actions=actions,
        severity=report.overall_type,
        can_save=report.allow_save,
        must_review=report.force_review,
        should_abort=report.should_abort,
        error_counts=dict(report.summary),
    )
