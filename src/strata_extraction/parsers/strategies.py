"""Ordered parse strategies and the attempt log of an extraction."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from strata_extraction.errors import ErrorKind, ExtractionCancelledError, ParseError, StrategyNotApplicableError

from .document import SourceDocument
from .excel_parser import ExcelParser
from .pdf_parser import PdfParser
from .raw_extraction import RawExtraction

logger = logging.getLogger(__name__)


class DocumentParser(Protocol):
    """Interface shared by the format parsers."""

    def parse(self, document: SourceDocument, mode: str = "primary") -> RawExtraction:
        """Parse the document in the given mode, raising ParseError on failure."""


@dataclass(frozen=True)
class AttemptRecord:
    """Outcome of one parse attempt.

    `status` is one of "success", "failed" or "skipped".
    """

    method: str
    status: str
    error: str | None = None
    kind: ErrorKind | None = None

    def to_json(self) -> dict:
        """Convert the attempt to a JSON serializable format."""
        return {
            "method": self.method,
            "status": self.status,
            "error": self.error,
            "kind": self.kind.label if self.kind else None,
        }


@dataclass(frozen=True)
class ParseStrategy:
    """A named way of reading a document: a parser with a parsing mode."""

    name: str
    parser: DocumentParser
    mode: str

    def attempt(self, document: SourceDocument) -> RawExtraction:
        """Parse the document, tagging the result with the strategy name.

        Raises:
            ParseError: If the strategy does not apply or the document cannot be read this way.
        """
        raw = self.parser.parse(document, self.mode)
        raw.metadata["strategy"] = self.name
        return raw


def excel_strategies(parser: ExcelParser) -> list[ParseStrategy]:
    """Strategies for spreadsheets, in the order they are attempted."""
    return [
        ParseStrategy("primary_excel", parser, "primary"),
        ParseStrategy("alternative_sheet", parser, "alternative_sheet"),
        ParseStrategy("relaxed_detection", parser, "relaxed"),
    ]


def pdf_strategies(parser: PdfParser) -> list[ParseStrategy]:
    """Strategies for PDF documents, in the order they are attempted."""
    return [
        ParseStrategy("primary_pdf", parser, "primary"),
        ParseStrategy("alternative_text_extraction", parser, "alternative_text"),
        ParseStrategy("page_by_page", parser, "page_by_page"),
    ]


def run_strategies(
    strategies: list[ParseStrategy],
    document: SourceDocument,
    attempt_log: list[AttemptRecord],
    should_cancel: Callable[[], bool] | None = None,
) -> RawExtraction | None:
    """Attempt the strategies in order until one succeeds.

    Every attempt is appended to the attempt log, including the ones that do not apply to the document.

    Args:
        strategies (list[ParseStrategy]): The strategies, in the order they are attempted.
        document (SourceDocument): The document to parse.
        attempt_log (list[AttemptRecord]): The log the attempts are appended to.
        should_cancel (Callable[[], bool] | None): Checked before every attempt.

    Returns:
        RawExtraction | None: The result of the first successful strategy, or None if all of them failed.

    Raises:
        ExtractionCancelledError: If `should_cancel` returns True before an attempt.
    """
    for strategy in strategies:
        if should_cancel is not None and should_cancel():
            raise ExtractionCancelledError(strategy.name)
        try:
            raw = strategy.attempt(document)
        except StrategyNotApplicableError as e:
            logger.info("Skipped %s: %s", strategy.name, e.message)
            attempt_log.append(AttemptRecord(strategy.name, "skipped", e.message, e.kind))
            continue
        except ParseError as e:
            logger.warning("Extraction attempt %s failed: %s", strategy.name, e.message)
            attempt_log.append(AttemptRecord(strategy.name, "failed", e.message, e.kind))
            continue
        logger.info("Extraction attempt %s succeeded with %s signal points.", strategy.name, len(raw))
        attempt_log.append(AttemptRecord(strategy.name, "success"))
        return raw
    return None
