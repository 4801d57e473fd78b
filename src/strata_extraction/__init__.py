"""Strata extraction package.

Extracts the strata layers of borehole logs from spreadsheets and PDF documents, with depth normalization,
validation, confidence scoring, error classification and fallback strategies for incomplete extractions.

Instructions:
- usage: from strata_extraction import StrataExtractor
- usage: StrataExtractor().extract_from_file("log.xlsx")

List of modules:
- parsers: Excel and PDF parsers, the ordered parse strategies and the raw extraction
- depth: Depth unit table and depth normalization
- validation: Depth sequence and layer boundary validation, automated depth recovery
- layers: Layer detection and confidence scoring
- classification: Error classification and user-facing error reports
- recovery: Fallback strategies for failed or uncertain extractions
- extractor: The coordinator of the pipeline
- main: Command line interface
"""

from strata_extraction.errors import ExtractionCancelledError, StrataExtractionError, UnsupportedFileTypeError
from strata_extraction.extractor import StrataExtractor
from strata_extraction.result import ExtractionResult

__all__ = [
    "ExtractionCancelledError",
    "ExtractionResult",
    "StrataExtractionError",
    "StrataExtractor",
    "UnsupportedFileTypeError",
]
