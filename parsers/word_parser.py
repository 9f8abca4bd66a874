"""
Word (.docx) price-list parser.

Reads the OOXML package directly: tables from word/document.xml first,
then tab or multi-space separated paragraphs as a fallback. Legacy .doc
files are not supported.
"""

import zipfile
from io import BytesIO
from typing import Optional

import structlog
from lxml import etree

from exceptions import ParseError
from models.parsed_file import FileFormat, ParseOptions
from parsers.base import ExtractedTable, FileParser, looks_like_header, table_from_text_lines

logger = structlog.get_logger(__name__)

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
NS = {
    "w": W_NS,
    "dc": "http://purl.org/dc/elements/1.1/",
    "cp": "http://schemas.openxmlformats.org/package/2006/metadata/core-properties",
}


def _paragraph_text(paragraph) -> str:
    parts = []
    for node in paragraph.iter(f"{{{W_NS}}}t", f"{{{W_NS}}}tab", f"{{{W_NS}}}br"):
        if node.tag == f"{{{W_NS}}}t":
            parts.append(node.text or "")
        elif node.tag == f"{{{W_NS}}}tab":
            parts.append("\t")
        else:
            parts.append(" ")
    return "".join(parts)


def _cell_text(cell) -> str:
    return " ".join(
        text for text in (_paragraph_text(p).strip() for p in cell.iterfind("w:p", NS)) if text
    )


class WordParser(FileParser):
    """Word documents via the OOXML package and lxml."""

    format = FileFormat.WORD
    extensions = (".docx",)
    mime_types = ("application/vnd.openxmlformats-officedocument.wordprocessingml.document",)
    structured = False
    extraction_confidence = 0.7

    def __init__(self):
        self._parser = etree.XMLParser(resolve_entities=False, no_network=True)

    def extract(self, content: bytes, options: ParseOptions) -> ExtractedTable:
        try:
            package = zipfile.ZipFile(BytesIO(content))
        except zipfile.BadZipFile as e:
            raise ParseError(
                "Not a .docx document",
                file_format=self.format.value,
                details={"original_error": str(e)}
            )

        with package:
            try:
                document = etree.fromstring(package.read("word/document.xml"), parser=self._parser)
            except KeyError:
                raise ParseError("Document body missing", file_format=self.format.value)
            metadata = self._core_properties(package)

        body = document.find("w:body", NS)
        if body is None:
            raise ParseError("Document body missing", file_format=self.format.value)

        table = self._from_tables(body)
        if table is None:
            lines = [_paragraph_text(p) for p in body.iter(f"{{{W_NS}}}p")]
            table = table_from_text_lines(lines)

        table.metadata.update(metadata)
        logger.debug("word_extracted", rows=len(table.rows), columns=len(table.headers))
        return table

    @staticmethod
    def _from_tables(body) -> Optional[ExtractedTable]:
        """Use the first table whose first row looks like a header row."""
        for tbl in body.iter(f"{{{W_NS}}}tbl"):
            rows = [
                [_cell_text(cell) for cell in tr.iterfind("w:tc", NS)]
                for tr in tbl.iterfind("w:tr", NS)
            ]
            rows = [row for row in rows if row]
            if rows and looks_like_header(rows[0]):
                return ExtractedTable(headers=rows[0], rows=rows[1:])
        return None

    def _core_properties(self, package: zipfile.ZipFile) -> dict:
        try:
            core = etree.fromstring(package.read("docProps/core.xml"), parser=self._parser)
        except (KeyError, etree.XMLSyntaxError):
            return {}
        metadata = {}
        title = core.findtext("dc:title", namespaces=NS)
        creator = core.findtext("dc:creator", namespaces=NS)
        if title:
            metadata["title"] = title.strip()
        if creator:
            metadata["author"] = creator.strip()
        return metadata
