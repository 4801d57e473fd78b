"""Pytest configuration file."""

from io import BytesIO

import pymupdf
import pytest
from openpyxl import Workbook
from openpyxl.styles import PatternFill

from strata_extraction.depth.normalizer import DepthNormalizer
from strata_extraction.extractor import StrataExtractor
from strata_extraction.validation.validation_service import ValidationService


def build_workbook(sheets: dict[str, list[list]], fills: dict[tuple[str, int, int], str] | None = None) -> bytes:
    """Write the rows of every sheet to an xlsx workbook.

    Args:
        sheets (dict[str, list[list]]): The rows of every sheet, by sheet name.
        fills (dict[tuple[str, int, int], str] | None): Solid fill colors, as ARGB strings, by (sheet, row, column).
            Rows and columns are 1-based, as in openpyxl.

    Returns:
        bytes: The content of the workbook.
    """
    workbook = Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets.items():
        worksheet = workbook.create_sheet(name)
        for row in rows:
            worksheet.append(row)
    for (name, row, column), color in (fills or {}).items():
        workbook[name].cell(row=row, column=column).fill = PatternFill(fill_type="solid", fgColor=color)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_pdf(pages: list[list[tuple[float, str]]]) -> bytes:
    """Write text lines to a PDF document.

    Args:
        pages (list[list[tuple[float, str]]]): For every page, the lines as (y position, text) pairs.

    Returns:
        bytes: The content of the document.
    """
    doc = pymupdf.open()
    for lines in pages:
        page = doc.new_page()
        for y, text in lines:
            page.insert_text((72, y), text, fontsize=11)
    content = doc.tobytes()
    doc.close()
    return content


@pytest.fixture
def xlsx_bytes():
    """Factory building xlsx workbooks in memory."""
    return build_workbook


@pytest.fixture
def pdf_bytes():
    """Factory building PDF documents in memory."""
    return build_pdf


@pytest.fixture
def strata_workbook() -> bytes:
    """A simple strata chart with a depth and a material column."""
    return build_workbook({"Log": [["Depth (ft)", "Material"], [0, "Clay"], [5, "Clay"], [10, "Sand"], [20, None]]})


@pytest.fixture
def strata_pdf() -> bytes:
    """A one-page strata chart with depth ranges in feet."""
    return build_pdf([[(100, "0 - 5 ft Clay"), (150, "5 - 10 ft Sandy clay"), (200, "10 - 20 ft Sand")]])


@pytest.fixture(scope="session")
def normalizer() -> DepthNormalizer:
    """Depth normalizer with the default parameters."""
    return DepthNormalizer.from_config()


@pytest.fixture(scope="session")
def validator() -> ValidationService:
    """Validation service with the default parameters."""
    return ValidationService.from_config()


@pytest.fixture
def extractor() -> StrataExtractor:
    """Extractor with the default settings."""
    return StrataExtractor()
