"""Format parsers turning documents into raw signal points.

List of modules:
- document: SourceDocument, the bytes and name of an input file
- raw_extraction: RawExtraction, SignalPoint and SignalKind
- vocabulary: material vocabulary and depth label patterns
- text: positioned text lines of PDF pages
- excel_parser: spreadsheet parser (.xlsx, .xls, .csv)
- pdf_parser: PDF parser
- strategies: ordered parse strategies and the attempt log
"""
