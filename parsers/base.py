"""
Parser contract and format registry.

Each format has one FileParser subclass. A parser only has to turn bytes
into a header row plus raw cell rows (an ExtractedTable); the base class
handles caps, timeouts, header cleanup, row numbering and money
normalization so every format produces the same ParseResult.
"""

import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any, Callable, Optional

import structlog

from exceptions import (
    AppError,
    ExtractionTimeoutError,
    FileTooLargeError,
    ParseError,
    UnsupportedFormatError,
)
from models.parsed_file import FileFormat, ParsedRow, ParseOptions
from utils.money import parse_money
from utils.text_utils import clean_cell, make_unique_headers

logger = structlog.get_logger(__name__)


@dataclass
class ExtractedTable:
    """Raw table pulled out of a file, before cleanup."""
    headers: list = field(default_factory=list)
    rows: list[list] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ParseResult:
    """Result of parsing a price-list file."""
    format: Optional[FileFormat] = None
    headers: list[str] = field(default_factory=list)
    rows: list[ParsedRow] = field(default_factory=list)
    error: Optional[AppError] = None
    warnings: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    extraction_confidence: float = 1.0
    preview: list[dict[str, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True if the file produced rows without error."""
        return self.error is None

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "success": self.success,
            "format": self.format.value if self.format else None,
            "headers": self.headers,
            "row_count": self.row_count,
            "error": self.error.to_dict()["error"] if self.error else None,
            "warnings": self.warnings,
            "metadata": self.metadata,
            "extraction_confidence": self.extraction_confidence,
            "preview": self.preview,
        }


# ===================
# SHARED HELPERS
# ===================

HEADER_KEYWORDS = (
    "sku", "product", "item", "code", "description", "name", "price",
    "cost", "currency", "qty", "quantity", "uom", "unit", "moq", "category",
)

_COLUMN_GAP = re.compile(r"\t+|\s{2,}")


def looks_like_header(cells: list[str]) -> bool:
    """True if at least two cells contain a typical price-list header word."""
    if len(cells) < 2:
        return False
    matches = sum(
        1 for cell in cells
        if any(keyword in cell.lower() for keyword in HEADER_KEYWORDS)
    )
    return matches >= 2


def split_text_columns(line: str) -> list[str]:
    """Split a text line on tabs or runs of 2+ spaces."""
    return [part.strip() for part in _COLUMN_GAP.split(line.strip()) if part.strip()]


def table_from_text_lines(lines: list[str]) -> ExtractedTable:
    """
    Build a table from free text.

    Finds the first line that looks like a header row, then takes every
    following line that splits into at least two columns.
    """
    table = ExtractedTable()
    header_index = None
    for index, line in enumerate(lines):
        cells = split_text_columns(line)
        if looks_like_header(cells):
            table.headers = cells
            header_index = index
            break

    if header_index is None:
        return table

    for line in lines[header_index + 1:]:
        cells = split_text_columns(line)
        if len(cells) >= 2:
            table.rows.append(cells)

    table.warnings.append("Table reconstructed from text layout")
    return table


def run_with_timeout(func: Callable[[], Any], timeout_seconds: float, file_format: str) -> Any:
    """
    Run func in a worker thread, bounded by timeout_seconds.

    The worker cannot be killed; on timeout it is abandoned and its result
    discarded.

    Raises:
        ExtractionTimeoutError: If func does not finish in time
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"extract-{file_format}")
    future = executor.submit(func)
    try:
        return future.result(timeout=timeout_seconds)
    except FutureTimeoutError:
        logger.warning(
            "extraction_timeout",
            format=file_format,
            timeout_seconds=timeout_seconds
        )
        raise ExtractionTimeoutError(file_format, timeout_seconds)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


# ===================
# PARSER BASE
# ===================

class FileParser(ABC):
    """
    Base class for format parsers.

    Subclasses set format/extensions/mime_types and implement extract().
    Unstructured parsers set structured = False and an
    extraction_confidence below 1; their extraction is time-bounded.
    """

    format: FileFormat
    extensions: tuple[str, ...] = ()
    mime_types: tuple[str, ...] = ()
    structured: bool = True
    extraction_confidence: float = 1.0

    @abstractmethod
    def extract(self, content: bytes, options: ParseOptions) -> ExtractedTable:
        """Pull the raw header row and cell rows out of the file."""

    def parse(self, content: bytes, options: Optional[ParseOptions] = None) -> ParseResult:
        """
        Parse file bytes into headers and rows.

        Never raises for bad input; failures come back in result.error.
        """
        options = options or ParseOptions()
        result = ParseResult(format=self.format, extraction_confidence=self.extraction_confidence)

        logger.info("parsing_file", format=self.format.value, size_bytes=len(content))

        try:
            if len(content) > options.max_file_size_bytes:
                raise FileTooLargeError(
                    "max_file_size_bytes",
                    options.max_file_size_bytes,
                    len(content),
                    file_format=self.format.value
                )

            if self.structured:
                table = self.extract(content, options)
            else:
                table = run_with_timeout(
                    lambda: self.extract(content, options),
                    options.extraction_timeout_seconds,
                    self.format.value
                )

            headers, rows = self.build_rows(table, options)

        except AppError as e:
            logger.warning("parse_failed", format=self.format.value, code=e.code, error=e.message)
            result.error = e
            return result
        except Exception as e:
            logger.error("parse_failed", format=self.format.value, error=str(e))
            result.error = ParseError(
                message=f"Failed to read {self.format.value} file: {e}",
                file_format=self.format.value,
                details={"original_error": str(e)}
            )
            return result

        result.headers = headers
        result.rows = rows
        result.warnings = table.warnings
        result.metadata = table.metadata
        result.preview = [dict(row.values) for row in rows[:options.preview_rows]]

        logger.info(
            "file_parsed",
            format=self.format.value,
            headers=len(headers),
            rows=len(rows),
            warnings=len(table.warnings)
        )
        return result

    def build_rows(self, table: ExtractedTable, options: ParseOptions) -> tuple[list[str], list[ParsedRow]]:
        """
        Clean headers and turn raw cell rows into ParsedRows.

        Raises:
            ParseError: If no header row or no data rows were found
            FileTooLargeError: If data rows exceed options.max_rows
        """
        if not table.headers or not any(clean_cell(h) for h in table.headers):
            raise ParseError("No header row found", file_format=self.format.value)

        headers = make_unique_headers(table.headers)
        width = len(headers)
        rows: list[ParsedRow] = []

        for raw in table.rows:
            cells = [clean_cell(c) for c in raw]
            if not any(cells):
                continue

            if len(cells) > width:
                # Overflow cells belong to the last column
                cells = cells[:width - 1] + [" ".join(c for c in cells[width - 1:] if c)]
            cells += [""] * (width - len(cells))

            if len(rows) >= options.max_rows:
                raise FileTooLargeError(
                    "max_rows",
                    options.max_rows,
                    len(rows) + 1,
                    file_format=self.format.value
                )

            values = dict(zip(headers, cells))
            amounts = {}
            for header, value in values.items():
                if value:
                    money = parse_money(value)
                    if money is not None:
                        amounts[header] = money

            rows.append(ParsedRow(row_number=len(rows) + 1, values=values, amounts=amounts))

        if not rows:
            raise ParseError("No data rows found", file_format=self.format.value)

        return headers, rows


# ===================
# REGISTRY
# ===================

class ParserRegistry:
    """
    Format registry.

    Adding a format means registering a parser; detection checks the file
    extension first, then the declared MIME type.
    """

    def __init__(self):
        self._parsers: dict[FileFormat, FileParser] = {}

    def register(self, parser: FileParser) -> None:
        self._parsers[parser.format] = parser
        logger.debug("parser_registered", format=parser.format.value)

    def get(self, file_format: FileFormat) -> FileParser:
        return self._parsers[file_format]

    @property
    def formats(self) -> list[FileFormat]:
        return list(self._parsers)

    def detect_format(self, filename: Optional[str], mime_type: Optional[str]) -> FileFormat:
        """
        Detect the format of a file.

        Raises:
            UnsupportedFormatError: If neither extension nor MIME type is known
        """
        extension = PurePath(filename or "").suffix.lower()
        if extension:
            for parser in self._parsers.values():
                if extension in parser.extensions:
                    return parser.format

        mime = (mime_type or "").split(";")[0].strip().lower()
        if mime:
            for parser in self._parsers.values():
                if mime in parser.mime_types:
                    return parser.format

        raise UnsupportedFormatError(filename or "", mime_type)

    def parse(
        self,
        content: bytes,
        filename: Optional[str],
        mime_type: Optional[str] = None,
        options: Optional[ParseOptions] = None
    ) -> ParseResult:
        """Detect the format and parse. Unknown types come back as an error result."""
        try:
            file_format = self.detect_format(filename, mime_type)
        except UnsupportedFormatError as e:
            logger.warning("unsupported_format", filename=filename, mime_type=mime_type)
            return ParseResult(error=e)

        return self.get(file_format).parse(content, options)
