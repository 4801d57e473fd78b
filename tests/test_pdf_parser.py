"""Test suite for the pdf parser module."""

import pytest

from strata_extraction.errors import ErrorKind, ParseError
from strata_extraction.parsers.document import SourceDocument
from strata_extraction.parsers.pdf_parser import PdfParser


@pytest.fixture(scope="module")
def parser() -> PdfParser:
    """PDF parser with the default vocabulary and depth patterns."""
    return PdfParser.from_config()


def _document(content):
    return SourceDocument("log.pdf", content)


@pytest.mark.parametrize("mode", ["primary", "alternative_text", "page_by_page"])
def test_parse_depth_ranges(parser, strata_pdf, mode):  # noqa: D103
    raw = parser.parse(_document(strata_pdf), mode)
    assert raw.depths == [0, 5, 10, 20], "The end of the deepest range closes the last layer"
    assert raw.materials == ["Clay", "Sandy Clay", "Sand", None]
    assert raw.colors == [None] * 4, "PDF documents carry no colors"
    assert raw.depth_unit == "feet"
    assert raw.metadata["page_count"] == 1
    assert raw.metadata["mode"] == mode
    assert "depth_ranges" in raw.metadata["format_hints"]


def test_materials_are_correlated_by_position(parser, pdf_bytes):  # noqa: D103
    content = pdf_bytes([[(100, "0 m"), (130, "Topsoil"), (200, "1.5 m"), (230, "Silty sand"), (330, "4 m")]])
    raw = parser.parse(_document(content))
    assert raw.depths == [0, 1.5, 4]
    assert raw.materials == ["Topsoil", "Silty Sand", None], "The closest material within reach is taken"
    assert raw.depth_unit == "meters"


def test_distant_materials_are_not_correlated(parser, pdf_bytes):  # noqa: D103
    content = pdf_bytes([[(100, "Clay"), (400, "12 ft")]])
    raw = parser.parse(_document(content))
    assert raw.depths == [12]
    assert raw.materials == [None]


def test_blank_document(parser, pdf_bytes):  # noqa: D103
    with pytest.raises(ParseError) as excinfo:
        parser.parse(_document(pdf_bytes([[]])))
    assert excinfo.value.kind == ErrorKind.NO_TEXT_CONTENT
    assert excinfo.value.message == "No text content found in PDF (may be image-based)"


def test_document_without_depths(parser, pdf_bytes):  # noqa: D103
    with pytest.raises(ParseError) as excinfo:
        parser.parse(_document(pdf_bytes([[(100, "Sandy clay with gravel")]])))
    assert excinfo.value.kind == ErrorKind.NO_DEPTHS_FOUND


def test_document_without_materials(parser, pdf_bytes):  # noqa: D103
    with pytest.raises(ParseError) as excinfo:
        parser.parse(_document(pdf_bytes([[(100, "0 ft"), (150, "5 ft")]])))
    assert excinfo.value.kind == ErrorKind.NO_MATERIALS_FOUND


def test_corrupt_document(parser):  # noqa: D103
    with pytest.raises(ParseError) as excinfo:
        parser.parse(_document(b"this is not a pdf"))
    assert excinfo.value.kind == ErrorKind.FILE_CORRUPTED


def test_unknown_mode(parser, strata_pdf):  # noqa: D103
    with pytest.raises(ValueError):
        parser.parse(_document(strata_pdf), "ocr")
