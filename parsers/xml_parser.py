"""
XML price-list parser.

Finds the repeated item elements under the price-list root
(<PriceList><Item>...</Item></PriceList>, <Catalog><Product/>...). Child
elements and attributes of each item become columns. Namespaces are
ignored.
"""

from collections import Counter

import structlog
from lxml import etree

from exceptions import ParseError
from models.parsed_file import FileFormat, ParseOptions
from parsers.base import ExtractedTable, FileParser

logger = structlog.get_logger(__name__)

ITEM_TAGS = {"item", "product", "article", "pricelistitem", "line", "row"}
METADATA_FIELDS = {
    "currency": "currency",
    "effectivedate": "effective_date",
    "suppliername": "supplier_name",
    "name": "price_list_name",
}


def _local(element) -> str:
    return etree.QName(element).localname


def _text(element) -> str:
    return (element.text or "").strip()


class XmlParser(FileParser):
    """XML price lists via lxml."""

    format = FileFormat.XML
    extensions = (".xml",)
    mime_types = ("application/xml", "text/xml")

    def __init__(self):
        self._parser = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)

    def extract(self, content: bytes, options: ParseOptions) -> ExtractedTable:
        try:
            root = etree.fromstring(content, parser=self._parser)
        except etree.XMLSyntaxError as e:
            raise ParseError("Invalid XML", file_format=self.format.value, details={"original_error": str(e)})
        if root is None:
            raise ParseError("Invalid XML", file_format=self.format.value)

        table = ExtractedTable()
        self._read_metadata(root, table)

        items = self._find_items(root)
        if not items:
            raise ParseError("No price list items found in XML", file_format=self.format.value)

        records = [self._item_to_record(item) for item in items]

        columns: list[str] = []
        for record in records:
            for key in record:
                if key not in columns:
                    columns.append(key)

        table.headers = columns
        table.rows = [[record.get(col, "") for col in columns] for record in records]
        table.metadata["item_element"] = _local(items[0])

        logger.debug("xml_extracted", items=len(items), columns=len(columns))
        return table

    def _find_items(self, root) -> list:
        """
        Locate item elements.

        Prefers children with a known item tag; otherwise the most repeated
        child tag under any element, provided those children have structure.
        """
        for element in root.iter():
            if not isinstance(element.tag, str):
                continue
            known = [c for c in element if isinstance(c.tag, str) and _local(c).lower() in ITEM_TAGS]
            if known:
                return known

        best: list = []
        for element in root.iter():
            if not isinstance(element.tag, str):
                continue
            children = [c for c in element if isinstance(c.tag, str)]
            if not children:
                continue
            tag, count = Counter(_local(c) for c in children).most_common(1)[0]
            if count < 2 or count <= len(best):
                continue
            candidates = [c for c in children if _local(c) == tag]
            if all(len(c) or c.attrib for c in candidates):
                best = candidates
        return best

    @staticmethod
    def _item_to_record(item) -> dict[str, str]:
        record: dict[str, str] = {}
        for name, value in item.attrib.items():
            record[etree.QName(name).localname] = str(value).strip()

        for child in item:
            if not isinstance(child.tag, str):
                continue
            name = _local(child)
            grandchildren = [g for g in child if isinstance(g.tag, str)]
            if grandchildren:
                for grandchild in grandchildren:
                    record[f"{name}.{_local(grandchild)}"] = _text(grandchild)
            else:
                record[name] = _text(child)
                # <Price currency="EUR">12.50</Price>
                for attr, value in child.attrib.items():
                    record[f"{name} {etree.QName(attr).localname}"] = str(value).strip()
        return record

    @staticmethod
    def _read_metadata(root, table: ExtractedTable) -> None:
        for name, value in root.attrib.items():
            key = METADATA_FIELDS.get(etree.QName(name).localname.lower())
            if key and value:
                table.metadata[key] = value

        meta = None
        for child in root:
            if isinstance(child.tag, str) and _local(child).lower() in ("metadata", "header"):
                meta = child
                break
        if meta is None:
            return
        for child in meta:
            if not isinstance(child.tag, str):
                continue
            key = METADATA_FIELDS.get(_local(child).lower())
            if key and _text(child):
                table.metadata[key] = _text(child)
