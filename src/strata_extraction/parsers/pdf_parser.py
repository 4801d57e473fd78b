"""Extraction of depth labels and material descriptions from PDF documents."""

from __future__ import annotations

import logging
import re
from collections.abc import Generator
from contextlib import contextmanager

import numpy as np
import pymupdf

from strata_extraction.errors import ErrorKind, ParseError
from strata_extraction.utils.file_utils import read_params

from .document import SourceDocument
from .raw_extraction import RawExtraction
from .text import TextLine, extract_text_lines, extract_text_lines_from_blocks
from .vocabulary import DepthLabel, DepthLabelMatcher, MaterialVocabulary

logger = logging.getLogger(__name__)


@contextmanager
def open_pdf(document: SourceDocument) -> Generator[pymupdf.Document, None, None]:
    """Open a PDF document from its bytes.

    Args:
        document (SourceDocument): The document to open.

    Yields:
        pymupdf.Document: The opened PDF document.

    Raises:
        ParseError: If the bytes are not a readable PDF document.
    """
    try:
        doc = pymupdf.Document(stream=document.content, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise ParseError(
            f"Cannot read file {document.filename}: the file is corrupt or not a valid PDF ({e})",
            ErrorKind.FILE_CORRUPTED,
        ) from e
    try:
        yield doc
    finally:
        doc.close()


class PdfParser:
    """Reads positioned text lines from a PDF and correlates depth labels with material descriptions.

    Every depth label becomes one signal point. Its material is the material line closest to it vertically on the
    same page, within the maximal correlation distance. PDF documents carry no color signals.
    """

    modes = ("primary", "alternative_text", "page_by_page")

    def __init__(self, vocabulary: MaterialVocabulary, matcher: DepthLabelMatcher, params: dict):
        """Initialize the parser.

        Args:
            vocabulary (MaterialVocabulary): The material vocabulary.
            matcher (DepthLabelMatcher): The depth label patterns.
            params (dict): The `matching_params.yml` parameters.
        """
        self.vocabulary = vocabulary
        self.matcher = matcher
        self.max_correlation_distance = float(params["pdf"]["max_correlation_distance"])
        self.line_grouping_threshold = float(params["pdf"]["line_grouping_threshold"])
        self.expected_depth_count = int(params["pdf"]["expected_depth_count"])
        self.depth_label_tolerance = float(params["depth_label_tolerance"])
        self.header_patterns = [
            re.compile(pattern, re.IGNORECASE)
            for column in ("depth", "strata", "thickness")
            for pattern in params["headers"][column]
        ]

    @classmethod
    def from_config(cls, config_filename: str = "matching_params.yml") -> PdfParser:
        params = read_params(config_filename)
        return cls(MaterialVocabulary.from_params(params), DepthLabelMatcher(params), params)

    def parse(self, document: SourceDocument, mode: str = "primary") -> RawExtraction:
        """Parse a PDF document.

        Args:
            document (SourceDocument): The document to parse.
            mode (str): "primary" reads words, "alternative_text" reads text blocks, "page_by_page" reads words but
                skips pages that cannot be read. Defaults to "primary".

        Returns:
            RawExtraction: The depth labels with their correlated materials.

        Raises:
            ParseError: If the document cannot be read or fails the readability check.
        """
        if mode not in self.modes:
            raise ValueError(f"Unknown PDF parsing mode: {mode}")

        with open_pdf(document) as doc:
            page_count = doc.page_count
            lines, skipped_pages = self._read_lines(doc, mode)

        return self._build_extraction(lines, page_count, skipped_pages, mode)

    def _read_lines(self, doc: pymupdf.Document, mode: str) -> tuple[list[TextLine], list[int]]:
        lines = []
        skipped_pages = []
        for page in doc:
            page_number = page.number + 1
            try:
                if mode == "alternative_text":
                    lines.extend(extract_text_lines_from_blocks(page))
                else:
                    lines.extend(extract_text_lines(page, self.line_grouping_threshold))
            except (RuntimeError, ValueError) as e:
                if mode != "page_by_page":
                    raise ParseError(
                        f"Critical parsing error on page {page_number}: {e}", ErrorKind.CRITICAL_PARSING_ERROR
                    ) from e
                logger.warning("Skipping unreadable page %s: %s", page_number, e)
                skipped_pages.append(page_number)
        return lines, skipped_pages

    def _build_extraction(
        self, lines: list[TextLine], page_count: int, skipped_pages: list[int], mode: str
    ) -> RawExtraction:
        texts = [line.text for line in lines if line.text.strip()]
        text_length = sum(len(text) for text in texts)
        if text_length == 0:
            raise ParseError("No text content found in PDF (may be image-based)", ErrorKind.NO_TEXT_CONTENT)

        depth_entries = self._find_depth_labels(lines)
        material_lines = self._find_material_lines(lines)

        if not depth_entries:
            raise ParseError("Could not identify depth values in the PDF", ErrorKind.NO_DEPTHS_FOUND)
        if not material_lines:
            raise ParseError("Could not identify material descriptions in the PDF", ErrorKind.NO_MATERIALS_FOUND)

        depths = []
        materials = []
        for line, label in depth_entries:
            depths.append(label.value)
            materials.append(self._correlate(line, material_lines))

        # the end of the deepest range closes the last layer
        range_ends = [label.end for _, label in depth_entries if label.end is not None]
        if range_ends and max(range_ends) > max(depths) + self.depth_label_tolerance:
            depths.append(max(range_ends))
            materials.append(None)

        material_confidence = float(np.mean([confidence for _, _, confidence in material_lines]))
        depth_confidence = min(len(depth_entries) / self.expected_depth_count, 1.0)
        headers = self._find_headers(lines)

        format_hints = ["depth_labels", "material_keywords"]
        if range_ends:
            format_hints.append("depth_ranges")
        if headers:
            format_hints.append("header_row")

        metadata = {
            "parser": "pdf",
            "mode": mode,
            "page_count": page_count,
            "text_length": text_length,
            "line_count": len(texts),
            "readability_confidence": round((depth_confidence + material_confidence) / 2, 3),
            "headers": headers,
            "has_headers": bool(headers),
            "format_hints": format_hints,
            "skipped_pages": skipped_pages,
        }
        logger.debug("Found %s depth labels and %s material lines.", len(depth_entries), len(material_lines))
        return RawExtraction(
            depths=depths,
            materials=materials,
            colors=[None] * len(depths),
            depth_unit=self.matcher.detect_unit(texts),
            metadata=metadata,
        )

    def _find_depth_labels(self, lines: list[TextLine]) -> list[tuple[TextLine, DepthLabel]]:
        """Find one depth label per line, skipping labels that repeat an already found depth."""
        entries = []
        for line in lines:
            label = self._depth_label_of_line(line)
            if label is None:
                continue
            if any(abs(label.value - other.value) < self.depth_label_tolerance for _, other in entries):
                continue
            entries.append((line, label))
        return entries

    def _depth_label_of_line(self, line: TextLine) -> DepthLabel | None:
        # the whole line first, then a leading number such as "2.5 Sandy clay"
        label = self.matcher.match(line.text)
        if label is None and len(line.words) > 1:
            label = self.matcher.match(line.words[0].text)
        return label

    def _find_material_lines(self, lines: list[TextLine]) -> list[tuple[TextLine, str, float]]:
        material_lines = []
        for line in lines:
            if not self.vocabulary.contains_material(line.text):
                continue
            material_text = self.matcher.strip_leading_depth(line.text)
            if not material_text or not self.vocabulary.contains_material(material_text):
                continue
            material_lines.append(
                (line, self.vocabulary.normalize(material_text), self.vocabulary.material_confidence(material_text))
            )
        return material_lines

    def _correlate(self, depth_line: TextLine, material_lines: list[tuple[TextLine, str, float]]) -> str | None:
        """Return the material closest to the depth label, or None if no material is close enough."""
        candidates = [
            (abs(line.y_center - depth_line.y_center), material)
            for line, material, _ in material_lines
            if line.page_number == depth_line.page_number
        ]
        if not candidates:
            return None
        distance, material = min(candidates, key=lambda candidate: candidate[0])
        if distance > self.max_correlation_distance:
            return None
        return material

    def _find_headers(self, lines: list[TextLine]) -> list[str]:
        headers = []
        for line in lines:
            candidates = [line.text] + [word.text for word in line.words]
            for candidate in candidates:
                cleaned = candidate.strip().strip(":").lower()
                if any(pattern.fullmatch(cleaned) for pattern in self.header_patterns) and candidate not in headers:
                    headers.append(candidate.strip())
        return headers
