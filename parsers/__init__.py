"""
Price-list file parsers.

Use parse_price_list_file() for the default registry, or build_registry()
to get a fresh one to extend.
"""

from typing import Optional

from models.parsed_file import FileFormat, ParseOptions
from parsers.base import (
    ExtractedTable,
    FileParser,
    ParseResult,
    ParserRegistry,
)
from parsers.csv_parser import CsvParser
from parsers.excel_parser import ExcelParser
from parsers.json_parser import JsonParser
from parsers.xml_parser import XmlParser
from parsers.pdf_parser import PdfParser
from parsers.word_parser import WordParser
from parsers.email_parser import EmailParser


def build_registry() -> ParserRegistry:
    """Registry with every built-in format."""
    registry = ParserRegistry()
    registry.register(CsvParser())
    registry.register(ExcelParser())
    registry.register(JsonParser())
    registry.register(XmlParser())
    registry.register(PdfParser())
    registry.register(WordParser())
    registry.register(EmailParser(registry))
    return registry


default_registry = build_registry()


def parse_price_list_file(
    content: bytes,
    filename: str,
    mime_type: Optional[str] = None,
    options: Optional[ParseOptions] = None
) -> ParseResult:
    """Parse a price-list file with the default registry."""
    return default_registry.parse(content, filename, mime_type, options)


__all__ = [
    "FileFormat",
    "ParseOptions",
    "ExtractedTable",
    "FileParser",
    "ParseResult",
    "ParserRegistry",
    "CsvParser",
    "ExcelParser",
    "JsonParser",
    "XmlParser",
    "PdfParser",
    "WordParser",
    "EmailParser",
    "build_registry",
    "default_registry",
    "parse_price_list_file",
]
