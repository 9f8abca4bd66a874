"""
PDF price-list parser.

Native (text) PDFs only. Tables found by pdfplumber are used first; when a
page has no ruled tables the text layout is split on column gaps under the
first line that looks like a header. Scanned PDFs produce no text and fail
with a ParseError.
"""

from io import BytesIO
from typing import Optional

import pdfplumber
import structlog

from exceptions import ParseError
from models.parsed_file import FileFormat, ParseOptions
from parsers.base import ExtractedTable, FileParser, looks_like_header, table_from_text_lines
from utils.text_utils import clean_cell

logger = structlog.get_logger(__name__)


class PdfParser(FileParser):
    """PDF price lists via pdfplumber."""

    format = FileFormat.PDF
    extensions = (".pdf",)
    mime_types = ("application/pdf",)
    structured = False
    extraction_confidence = 0.6

    def extract(self, content: bytes, options: ParseOptions) -> ExtractedTable:
        try:
            pdf = pdfplumber.open(BytesIO(content))
        except Exception as e:
            raise ParseError("Failed to open PDF", file_format=self.format.value, details={"original_error": str(e)})

        with pdf:
            page_count = len(pdf.pages)
            table = self._tables_from_pages(pdf.pages)
            if table is None:
                lines = []
                for page in pdf.pages:
                    page_text = page.extract_text() or ""
                    lines.extend(page_text.splitlines())
                if not any(line.strip() for line in lines):
                    raise ParseError(
                        "PDF has no extractable text (scanned documents are not supported)",
                        file_format=self.format.value
                    )
                table = table_from_text_lines(lines)

        table.metadata["page_count"] = page_count
        logger.debug("pdf_extracted", pages=page_count, rows=len(table.rows))
        return table

    @staticmethod
    def _tables_from_pages(pages) -> Optional[ExtractedTable]:
        """
        Collect ruled tables across pages.

        The first table whose first row looks like a header sets the
        columns; later tables with the same width continue it (repeated
        header rows on following pages are dropped).
        """
        result = None
        for page in pages:
            for raw_table in page.extract_tables():
                rows = [[clean_cell(c) for c in row] for row in raw_table if row]
                if not rows:
                    continue
                if result is None:
                    if looks_like_header(rows[0]):
                        result = ExtractedTable(headers=rows[0], rows=rows[1:])
                    continue
                if len(rows[0]) != len(result.headers):
                    continue
                if rows[0] == result.headers:
                    rows = rows[1:]
                result.rows.extend(rows)
        return result
