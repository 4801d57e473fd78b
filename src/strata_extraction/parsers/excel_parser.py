"""Extraction of depths, materials and fill colors from spreadsheets."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from xml.etree import ElementTree
from zipfile import BadZipFile

import numpy as np
import pandas as pd
import xlrd
from openpyxl import load_workbook
from openpyxl.cell.cell import Cell
from openpyxl.utils.exceptions import InvalidFileException

from strata_extraction.errors import ErrorKind, ParseError, StrategyNotApplicableError
from strata_extraction.utils.file_utils import read_params

from .document import SourceDocument
from .raw_extraction import RawExtraction
from .vocabulary import MaterialVocabulary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridCell:
    """Value and fill color of a spreadsheet cell."""

    value: object = None
    color: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.value is None or (isinstance(self.value, str) and not self.value.strip())

    @property
    def text(self) -> str:
        return "" if self.value is None else str(self.value).strip()


@dataclass
class SheetGrid:
    """The cells of one sheet, row by row."""

    name: str
    rows: list[list[GridCell]]

    @property
    def is_empty(self) -> bool:
        return all(cell.is_empty and cell.color is None for row in self.rows for cell in row)

    def cell(self, row: int, column: int) -> GridCell:
        cells = self.rows[row]
        return cells[column] if column < len(cells) else GridCell()


@dataclass
class ColumnMapping:
    """Columns holding the depths, materials and thicknesses of a sheet."""

    header_row: int | None = None
    depth: int | None = None
    strata: int | None = None
    thickness: int | None = None
    names: dict[str, str] = field(default_factory=dict)
    headers: list[str] = field(default_factory=list)
    inferred: bool = False

    @property
    def first_data_row(self) -> int:
        return 0 if self.header_row is None else self.header_row + 1


def fill_color(cell: Cell) -> str | None:
    """Return the fill color of an openpyxl cell.

    RGB colors are returned as "#RRGGBB" (the alpha channel of ARGB values is dropped), theme and indexed colors as
    "theme:<n>" and "indexed:<n>".

    Args:
        cell (Cell): The cell.

    Returns:
        str | None: The color, or None if the cell has no solid fill.
    """
    fill = cell.fill
    if fill is None or fill.fill_type != "solid":
        return None
    color = fill.fgColor
    if color is None:
        return None
    if color.type == "rgb" and isinstance(color.rgb, str):
        rgb = color.rgb[-6:].upper()
        return None if rgb == "000000" and color.rgb.startswith("00") else f"#{rgb}"
    if color.type == "theme":
        return f"theme:{color.theme}"
    if color.type == "indexed":
        return f"indexed:{color.indexed}"
    return None


class ExcelParser:
    """Reads strata charts from `.xlsx`, `.xls` and `.csv` files.

    The depth and strata columns are found by matching the header cells of the first rows against configured
    patterns. In relaxed mode, columns without a recognizable header are inferred from their content.
    """

    modes = ("primary", "alternative_sheet", "relaxed")

    def __init__(self, vocabulary: MaterialVocabulary, params: dict):
        """Initialize the parser.

        Args:
            vocabulary (MaterialVocabulary): The material vocabulary.
            params (dict): The `matching_params.yml` parameters.
        """
        self.vocabulary = vocabulary
        headers = params["headers"]
        self.search_rows = int(headers["search_rows"])
        self.header_patterns = {
            column: [re.compile(pattern, re.IGNORECASE) for pattern in headers[column]]
            for column in ("depth", "strata", "thickness")
        }
        self.meters_header = re.compile(params["header_units"]["meters"], re.IGNORECASE)
        self.feet_header = re.compile(params["header_units"]["feet"], re.IGNORECASE)
        inference = params["inference"]
        self.sample_rows = int(inference["sample_rows"])
        self.min_values = int(inference["min_values"])
        self.depth_increasing_ratio = float(inference["depth_increasing_ratio"])
        self.strata_text_ratio = float(inference["strata_text_ratio"])

    @classmethod
    def from_config(cls, config_filename: str = "matching_params.yml") -> ExcelParser:
        params = read_params(config_filename)
        return cls(MaterialVocabulary.from_params(params), params)

    def parse(self, document: SourceDocument, mode: str = "primary") -> RawExtraction:
        """Parse a spreadsheet.

        Args:
            document (SourceDocument): The document to parse.
            mode (str): "primary" reads the first sheet, "alternative_sheet" the other sheets, "relaxed" every sheet
                with column inference. Defaults to "primary".

        Returns:
            RawExtraction: The depths, materials and colors of the data rows.

        Raises:
            ParseError: If the document cannot be read or no sheet passes the readability check.
        """
        if mode not in self.modes:
            raise ValueError(f"Unknown spreadsheet parsing mode: {mode}")

        sheets = self.load_sheets(document)
        if not sheets:
            raise ParseError("Workbook contains no sheets", ErrorKind.NO_TEXT_CONTENT)

        if mode == "primary":
            return self._parse_sheet(sheets[0], relaxed=False)

        if mode == "alternative_sheet":
            if len(sheets) < 2:
                raise StrategyNotApplicableError("Workbook has no alternative sheet")
            candidates = sheets[1:]
        else:
            candidates = sheets

        last_error = None
        for sheet in candidates:
            try:
                return self._parse_sheet(sheet, relaxed=mode == "relaxed")
            except ParseError as e:
                logger.debug("Sheet %s could not be parsed: %s", sheet.name, e.message)
                last_error = e
        raise last_error

    def load_sheets(self, document: SourceDocument) -> list[SheetGrid]:
        """Load the cells of every sheet of the document.

        Args:
            document (SourceDocument): The document to load.

        Returns:
            list[SheetGrid]: The sheets, in workbook order.

        Raises:
            ParseError: If the document cannot be read.
        """
        extension = document.extension
        try:
            if extension == ".xlsx":
                return self._load_xlsx(document)
            if extension == ".xls":
                frames = pd.read_excel(document.stream(), sheet_name=None, header=None, engine="xlrd")
                return [self._grid_from_frame(str(name), frame) for name, frame in frames.items()]
            if extension == ".csv":
                frame = pd.read_csv(document.stream(), header=None, skip_blank_lines=False)
                return [self._grid_from_frame(document.filename, frame)]
        except pd.errors.EmptyDataError as e:
            raise ParseError("No data found in the spreadsheet", ErrorKind.NO_TEXT_CONTENT) from e
        except (
            BadZipFile,
            InvalidFileException,
            xlrd.XLRDError,
            pd.errors.ParserError,
            UnicodeDecodeError,
            OSError,
            KeyError,
            # malformed part XML, ElementTree.ParseError or lxml XMLSyntaxError depending on the openpyxl backend
            ElementTree.ParseError,
            SyntaxError,
        ) as e:
            raise ParseError(
                f"Cannot read file {document.filename}: the file is corrupt or has an invalid file format ({e})",
                ErrorKind.FILE_CORRUPTED,
            ) from e
        except ValueError as e:
            # raised by xlrd and pandas for content that is not a spreadsheet
            raise ParseError(
                f"Cannot read file {document.filename}: invalid file format ({e})", ErrorKind.FILE_CORRUPTED
            ) from e
        raise ParseError(f"Invalid file format for a spreadsheet: {document.filename}", ErrorKind.FILE_CORRUPTED)

    @staticmethod
    def _load_xlsx(document: SourceDocument) -> list[SheetGrid]:
        workbook = load_workbook(document.stream(), data_only=True)
        try:
            return [
                SheetGrid(
                    worksheet.title,
                    [[GridCell(cell.value, fill_color(cell)) for cell in row] for row in worksheet.iter_rows()],
                )
                for worksheet in workbook.worksheets
            ]
        finally:
            workbook.close()

    @staticmethod
    def _grid_from_frame(name: str, frame: pd.DataFrame) -> SheetGrid:
        values = frame.astype(object).where(pd.notna(frame), None).values.tolist()
        return SheetGrid(name, [[GridCell(value) for value in row] for row in values])

    def _parse_sheet(self, sheet: SheetGrid, relaxed: bool) -> RawExtraction:
        if not sheet.rows or sheet.is_empty:
            raise ParseError(f"No data found in sheet {sheet.name}", ErrorKind.NO_TEXT_CONTENT)

        mapping = self.detect_columns(sheet)
        if relaxed:
            mapping = self.infer_columns(sheet, mapping)

        if mapping.depth is None:
            raise ParseError("Could not identify depth column in the spreadsheet", ErrorKind.NO_DEPTHS_FOUND)

        depths = []
        materials = []
        colors = []
        thicknesses = []
        for row_index in range(mapping.first_data_row, len(sheet.rows)):
            depth_cell = sheet.cell(row_index, mapping.depth)
            strata_cell = sheet.cell(row_index, mapping.strata) if mapping.strata is not None else GridCell()
            material = self.vocabulary.normalize(strata_cell.text) if strata_cell.text else None
            color = strata_cell.color or self._row_color(sheet.rows[row_index])

            if depth_cell.is_empty:
                # rows without depth are kept in relaxed mode, to be interpolated by the depth recovery
                if not relaxed or (material is None and color is None):
                    continue
                depth = None
            else:
                depth = depth_cell.value.strip() if isinstance(depth_cell.value, str) else depth_cell.value

            depths.append(depth)
            materials.append(material)
            colors.append(color)
            if mapping.thickness is not None:
                thicknesses.append(_as_number(sheet.cell(row_index, mapping.thickness).value))

        if not any(depth is not None for depth in depths):
            raise ParseError("No depth values found in the depth column", ErrorKind.NO_DEPTHS_FOUND)
        if mapping.strata is None and not any(colors):
            raise ParseError(
                "Could not identify strata/material column in the spreadsheet", ErrorKind.NO_MATERIALS_FOUND
            )
        if not any(materials) and not any(colors):
            raise ParseError("No material descriptions found in the strata column", ErrorKind.NO_MATERIALS_FOUND)

        return RawExtraction(
            depths=depths,
            materials=materials,
            colors=colors,
            depth_unit=self._header_unit(mapping.names.get("depth", "")),
            thicknesses=thicknesses if mapping.thickness is not None else None,
            metadata=self._metadata(sheet, mapping, len(depths), relaxed, any(colors)),
        )

    def detect_columns(self, sheet: SheetGrid) -> ColumnMapping:
        """Find the header row and the depth, strata and thickness columns by their header text.

        The first row among the first `search_rows` rows holding a depth or strata header is the header row.

        Args:
            sheet (SheetGrid): The sheet.

        Returns:
            ColumnMapping: The detected columns; empty if no header row was found.
        """
        for row_index, row in enumerate(sheet.rows[: self.search_rows]):
            mapping = ColumnMapping(header_row=row_index)
            for column_index, cell in enumerate(row):
                text = cell.text.lower()
                if not text:
                    continue
                for column, patterns in self.header_patterns.items():
                    if getattr(mapping, column) is None and any(pattern.fullmatch(text) for pattern in patterns):
                        setattr(mapping, column, column_index)
                        mapping.names[column] = cell.text
                        break
            if mapping.depth is not None or mapping.strata is not None:
                mapping.headers = [cell.text for cell in row if not cell.is_empty]
                return mapping
        return ColumnMapping()

    def infer_columns(self, sheet: SheetGrid, mapping: ColumnMapping) -> ColumnMapping:
        """Complete a column mapping by inspecting the content of the columns.

        A numeric column whose values mostly increase is taken as depth column, a column holding mostly non-numeric
        text as strata column.

        Args:
            sheet (SheetGrid): The sheet.
            mapping (ColumnMapping): The mapping found from the headers.

        Returns:
            ColumnMapping: The completed mapping.
        """
        sample = sheet.rows[mapping.first_data_row : mapping.first_data_row + self.sample_rows]
        column_count = max((len(row) for row in sample), default=0)
        taken = {mapping.depth, mapping.strata, mapping.thickness}

        if mapping.depth is None:
            for column_index in range(column_count):
                if column_index in taken:
                    continue
                values = [_as_number(row[column_index].value) for row in sample if column_index < len(row)]
                values = [value for value in values if value is not None]
                if len(values) < self.min_values:
                    continue
                steps = np.diff(values)
                if np.mean(steps > 0) >= self.depth_increasing_ratio:
                    mapping.depth = column_index
                    mapping.names["depth"] = "Depth (inferred)"
                    mapping.inferred = True
                    taken.add(column_index)
                    break

        if mapping.strata is None:
            for column_index in range(column_count):
                if column_index in taken:
                    continue
                cells = [row[column_index] for row in sample if column_index < len(row)]
                cells = [cell for cell in cells if not cell.is_empty]
                if len(cells) < self.min_values:
                    continue
                text_ratio = sum(1 for cell in cells if _as_number(cell.value) is None) / len(cells)
                if text_ratio >= self.strata_text_ratio:
                    mapping.strata = column_index
                    mapping.names["strata"] = "Material (inferred)"
                    mapping.inferred = True
                    break

        return mapping

    def _header_unit(self, header: str) -> str | None:
        if self.meters_header.search(header):
            return "meters"
        if self.feet_header.search(header):
            return "feet"
        return None

    @staticmethod
    def _row_color(row: list[GridCell]) -> str | None:
        return next((cell.color for cell in row if cell.color is not None), None)

    @staticmethod
    def _metadata(sheet: SheetGrid, mapping: ColumnMapping, row_count: int, relaxed: bool, has_colors: bool) -> dict:
        data_rows = [row for row in sheet.rows[mapping.first_data_row :] if any(not cell.is_empty for cell in row)]
        widths = {sum(1 for cell in row if not cell.is_empty) for row in data_rows}
        format_hints = []
        if mapping.names.get("depth") and not mapping.inferred:
            format_hints.append("depth_column_header")
        if mapping.names.get("strata") and not mapping.inferred:
            format_hints.append("strata_column_header")
        if mapping.thickness is not None:
            format_hints.append("thickness_column")
        if has_colors:
            format_hints.append("fill_colors")
        return {
            "parser": "excel",
            "mode": "relaxed" if relaxed else "headers",
            "sheet_name": sheet.name,
            "headers": mapping.headers,
            "has_headers": mapping.header_row is not None,
            "column_mapping": dict(mapping.names),
            "mapped_columns": len(mapping.names),
            "column_count": max(widths, default=0),
            "consistent_columns": len(widths) == 1,
            "row_count": row_count,
            "format_hints": format_hints,
        }


def _as_number(value: object) -> float | None:
    """Return the value as float if it is numeric, or a string holding only a number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int | float | np.number):
        number = float(value)
        return None if np.isnan(number) else number
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None
