"""
CSV price-list parser.

Reads delimited text with pandas. The delimiter is sniffed from the first
lines unless given; the encoding falls back to cp1252 when the file is not
valid UTF-8 (common for spreadsheets exported on Windows).
"""

import csv
from io import StringIO
from typing import Optional

import pandas as pd
import structlog

from exceptions import ParseError
from models.parsed_file import FileFormat, ParseOptions
from parsers.base import ExtractedTable, FileParser
from utils.text_utils import clean_cell

logger = structlog.get_logger(__name__)

CANDIDATE_DELIMITERS = ",;\t|"
FALLBACK_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")


def decode_text(content: bytes, encoding: Optional[str] = None) -> tuple[str, str]:
    """
    Decode bytes to text.

    Returns:
        (text, encoding actually used)
    """
    if encoding:
        try:
            return content.decode(encoding), encoding
        except (UnicodeDecodeError, LookupError) as e:
            raise ParseError(f"Could not decode file as {encoding}", details={"original_error": str(e)})

    for candidate in FALLBACK_ENCODINGS:
        try:
            return content.decode(candidate), candidate
        except UnicodeDecodeError:
            continue
    # latin-1 decodes any byte sequence, so this is unreachable
    raise ParseError("Could not decode file")


def sniff_delimiter(text: str) -> str:
    """Guess the delimiter from the first lines; defaults to comma."""
    sample = "\n".join(text.splitlines()[:20])
    try:
        return csv.Sniffer().sniff(sample, delimiters=CANDIDATE_DELIMITERS).delimiter
    except csv.Error:
        return ","


class CsvParser(FileParser):
    """Comma/semicolon/tab separated price lists."""

    format = FileFormat.CSV
    extensions = (".csv", ".tsv", ".txt")
    mime_types = ("text/csv", "application/csv", "text/tab-separated-values", "text/plain")

    def extract(self, content: bytes, options: ParseOptions) -> ExtractedTable:
        text, encoding = decode_text(content, options.encoding)
        delimiter = options.delimiter or sniff_delimiter(text)

        # Header row plus one row past the cap is enough to detect overflow
        row_limit = options.max_rows + 2
        records = self._read(text, delimiter, row_limit)
        if len(records) >= row_limit and any(not any(clean_cell(c) for c in r) for r in records):
            # Empty rows don't count toward the cap; read the rest of the file
            records = self._read(text, delimiter)

        table = ExtractedTable(metadata={"encoding": encoding, "delimiter": delimiter})

        if encoding not in ("utf-8-sig", options.encoding):
            table.warnings.append(f"File is not UTF-8; decoded as {encoding}")

        # First non-empty record is the header row
        while records and not any(clean_cell(c) for c in records[0]):
            records.pop(0)
        if records:
            table.headers = records[0]
            table.rows = records[1:]

        logger.debug("csv_extracted", delimiter=delimiter, encoding=encoding, records=len(records))
        return table

    def _read(self, text: str, delimiter: str, nrows: Optional[int] = None) -> list[list]:
        try:
            df = pd.read_csv(
                StringIO(text),
                sep=delimiter,
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                engine="python",
                nrows=nrows,
            )
        except pd.errors.EmptyDataError:
            raise ParseError("File is empty", file_format=self.format.value)
        except (pd.errors.ParserError, csv.Error) as e:
            raise ParseError(
                "Malformed CSV",
                file_format=self.format.value,
                details={"original_error": str(e)}
            )
        return df.values.tolist()
