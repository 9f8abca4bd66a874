"""
Email (.eml) price-list parser.

Order of preference:
    1. first attachment in a supported format, parsed by its own parser
    2. HTML tables in the message body
    3. tab / multi-space separated lines in the plain-text body
"""

import re
from email import policy
from email.parser import BytesParser
from email.utils import parseaddr
from io import StringIO
from typing import Optional

import pandas as pd
import structlog

from exceptions import ParseError, UnsupportedFormatError
from models.parsed_file import FileFormat, ParseOptions
from parsers.base import (
    ExtractedTable,
    FileParser,
    ParserRegistry,
    looks_like_header,
    table_from_text_lines,
)
from utils.text_utils import clean_cell

logger = structlog.get_logger(__name__)

SUBJECT_PATTERNS = (
    re.compile(r"price\s*list.*?from\s+(.+?)\s*$", re.IGNORECASE),
    re.compile(r"quotation\s+from\s+(.+?)\s*$", re.IGNORECASE),
    re.compile(r"^(.+?)\s*(?:price\s*list|product\s*catalog)", re.IGNORECASE),
)


def supplier_hints(sender: str, subject: str) -> dict:
    """Supplier name/email guessed from the sender and subject line."""
    hints = {}
    name, address = parseaddr(sender or "")
    if address:
        hints["supplier_email"] = address
        if "@" in address:
            hints["supplier_domain"] = address.split("@", 1)[1]
    if name:
        hints["sender_name"] = name
    for pattern in SUBJECT_PATTERNS:
        match = pattern.search(subject or "")
        if match and match.group(1).strip():
            hints["supplier_name"] = match.group(1).strip(" -:")
            break
    return hints


class EmailParser(FileParser):
    """RFC 822 messages via the standard library email package."""

    format = FileFormat.EMAIL
    extensions = (".eml",)
    mime_types = ("message/rfc822",)
    structured = False
    extraction_confidence = 0.7

    def __init__(self, registry: ParserRegistry):
        self.registry = registry

    def extract(self, content: bytes, options: ParseOptions) -> ExtractedTable:
        message = BytesParser(policy=policy.default).parsebytes(content)
        subject = str(message.get("subject", "") or "")
        sender = str(message.get("from", "") or "")

        metadata = {"subject": subject, "from": sender, **supplier_hints(sender, subject)}

        table = self._from_attachments(message, options)
        if table is None:
            table = self._from_body(message)
        if table is None:
            raise ParseError(
                "No price data found in email attachments or body",
                file_format=self.format.value
            )

        table.metadata.update(metadata)
        return table

    def _from_attachments(self, message, options: ParseOptions) -> Optional[ExtractedTable]:
        for part in message.iter_attachments():
            filename = part.get_filename() or ""
            content_type = part.get_content_type()
            try:
                file_format = self.registry.detect_format(filename, content_type)
            except UnsupportedFormatError:
                logger.debug("email_attachment_skipped", filename=filename, content_type=content_type)
                continue
            if file_format == FileFormat.EMAIL:
                continue

            payload = part.get_payload(decode=True) or b""
            result = self.registry.get(file_format).parse(payload, options)
            if not result.success:
                logger.warning(
                    "email_attachment_unreadable",
                    filename=filename,
                    error=result.error.message
                )
                continue

            logger.info("email_attachment_parsed", filename=filename, format=file_format.value)
            return ExtractedTable(
                headers=result.headers,
                rows=[[row.values[h] for h in result.headers] for row in result.rows],
                metadata={
                    **result.metadata,
                    "attachment": filename,
                    "attachment_format": file_format.value,
                },
                warnings=list(result.warnings),
            )
        return None

    def _from_body(self, message) -> Optional[ExtractedTable]:
        html_part = message.get_body(preferencelist=("html",))
        if html_part is not None:
            table = self._from_html(html_part.get_content())
            if table is not None:
                return table

        text_part = message.get_body(preferencelist=("plain",))
        if text_part is not None:
            table = table_from_text_lines(text_part.get_content().splitlines())
            if table.headers:
                table.metadata["source"] = "body_text"
                return table
        return None

    @staticmethod
    def _from_html(html: str) -> Optional[ExtractedTable]:
        try:
            frames = pd.read_html(StringIO(html))
        except ValueError:
            # No <table> elements
            return None

        for df in frames:
            headers = [clean_cell(c) for c in df.columns]
            rows = df.values.tolist()
            # Tables without <th> get integer column labels
            if all(pd.api.types.is_integer(c) for c in df.columns) and rows:
                headers = [clean_cell(c) for c in rows[0]]
                rows = rows[1:]
            if looks_like_header(headers):
                return ExtractedTable(headers=headers, rows=rows, metadata={"source": "body_html"})
        return None
