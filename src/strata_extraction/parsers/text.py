"""Methods and classes for extracting positioned text lines from a PDF page."""

from __future__ import annotations

import pymupdf


class TextWord:
    """Class to represent a word on a specific location on a PDF page.

    A TextWord object consists of a pymupdf Rectangle object and a string.
    The string is the word that is contained in the rectangle.
    """

    def __init__(self, rect: pymupdf.Rect, text: str, page: int):
        self.rect = rect
        self.text = text
        self.page_number = page

    def __repr__(self) -> str:
        return f"TextWord({self.rect}, {self.text})"


class TextLine:
    """Class to represent TextLine objects.

    A TextLine object is a collection of TextWord objects.
    It is used to represent a line of text in a PDF document.
    """

    def __init__(self, words: list[TextWord]):
        """Initialize the TextLine object.

        Args:
            words (list[TextWord]): The words that make up the line.
        """
        rect = pymupdf.Rect()
        for word in words:
            rect.include_rect(word.rect)
        self.rect = rect
        self.page_number = next((word.page_number for word in words), None)
        self.words = words

    def __repr__(self) -> str:
        return f"TextLine({self.text}, {self.rect})"

    @property
    def text(self) -> str:
        """Get the text of the line."""
        return " ".join([word.text for word in self.words])

    @property
    def y_center(self) -> float:
        return (self.rect.y0 + self.rect.y1) / 2


def extract_text_lines(page: pymupdf.Page, line_grouping_threshold: float = 5) -> list[TextLine]:
    """Extract all text lines from the page.

    Words are grouped by the block and line numbers reported by PyMuPDF. Consecutive lines of the same block
    whose vertical centers are closer than the grouping threshold are merged.

    Args:
        page (pymupdf.Page): the page to extract text from
        line_grouping_threshold (float): maximal vertical distance between lines that are merged

    Returns:
        list[TextLine]: A list of text lines, in reading order.
    """
    words_by_line = {}
    for x0, y0, x1, y1, word, block_no, line_no, _word_no in page.get_text("words"):
        rect = pymupdf.Rect(x0, y0, x1, y1) * page.rotation_matrix
        text_word = TextWord(rect, word, page.number + 1)
        key = (block_no, line_no)
        if key not in words_by_line:
            words_by_line[key] = []
        words_by_line[key].append(text_word)

    lines = []
    previous_block = None
    for (block_no, _line_no), words in words_by_line.items():
        line = TextLine(words)
        if (
            lines
            and previous_block == block_no
            and abs(lines[-1].y_center - line.y_center) < line_grouping_threshold
        ):
            lines[-1] = TextLine(lines[-1].words + words)
        else:
            lines.append(line)
        previous_block = block_no
    return lines


def extract_text_lines_from_blocks(page: pymupdf.Page) -> list[TextLine]:
    """Extract text lines from the text blocks of the page.

    This is an alternative to `extract_text_lines` for documents where the word segmentation of PyMuPDF fails.
    The lines of a block share its horizontal extent, their vertical positions are interpolated over the block.

    Args:
        page (pymupdf.Page): the page to extract text from

    Returns:
        list[TextLine]: A list of text lines.
    """
    lines = []
    for x0, y0, x1, y1, text, _block_no, block_type in page.get_text("blocks"):
        if block_type != 0:
            # image block
            continue
        block_lines = [line.strip() for line in text.splitlines() if line.strip()]
        if not block_lines:
            continue
        line_height = (y1 - y0) / len(block_lines)
        for index, line_text in enumerate(block_lines):
            rect = pymupdf.Rect(x0, y0 + index * line_height, x1, y0 + (index + 1) * line_height)
            words = [TextWord(rect, word, page.number + 1) for word in line_text.split()]
            lines.append(TextLine(words))
    return lines
