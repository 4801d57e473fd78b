"""Source documents handed to the parsers."""

from __future__ import annotations

from dataclasses import dataclass
from io import BufferedIOBase, BytesIO
from pathlib import Path, PurePath

DocumentInput = Path | str | bytes | BytesIO | BufferedIOBase


def resolve_filename(file: DocumentInput, filename: str | None = None) -> str:
    """Determine the name of a document without reading it.

    Args:
        file (DocumentInput): The document, or the path to it.
        filename (str | None): Explicit name of the document, takes precedence when given.

    Returns:
        str: The name of the document.
    """
    if filename is not None:
        return filename
    if isinstance(file, str | Path):
        return Path(file).name
    name = getattr(file, "name", None)
    if name is None:
        raise ValueError("A filename is required when the document is given as bytes or a stream.")
    return PurePath(name).name


@dataclass(frozen=True)
class SourceDocument:
    """The raw bytes of a document together with its filename."""

    filename: str
    content: bytes

    @classmethod
    def load(cls, file: DocumentInput, filename: str | None = None) -> SourceDocument:
        """Read a document from a path, raw bytes or a binary stream.

        Args:
            file (DocumentInput): The document, or the path to it.
            filename (str | None): Name of the document. Required for bytes and unnamed streams, defaults to the
                file name of the path otherwise.

        Returns:
            SourceDocument: The loaded document.
        """
        name = resolve_filename(file, filename)
        if isinstance(file, str | Path):
            return cls(name, Path(file).read_bytes())
        if isinstance(file, bytes | bytearray):
            return cls(name, bytes(file))
        return cls(name, file.read())

    @property
    def extension(self) -> str:
        """The lower-cased file extension, including the dot."""
        return PurePath(self.filename).suffix.lower()

    @property
    def size(self) -> int:
        return len(self.content)

    def stream(self) -> BytesIO:
        """A fresh binary stream over the content."""
        return BytesIO(self.content)
