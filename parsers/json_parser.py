"""
JSON price-list parser.

Accepted layouts:
    [{"sku": ..., "price": ...}, ...]
    {"metadata": {...}, "items" | "products" | "prices" | ...: [...]}
    {"supplier": {...}, "priceList": {"name": ..., "items": [...]}}
    {"priceLists": [{"name": ..., "items": [...]}, ...]}

Item keys become columns in first-seen order.
"""

import json
from typing import Any, Optional

import structlog

from exceptions import ParseError
from models.parsed_file import FileFormat, ParseOptions
from parsers.base import ExtractedTable, FileParser
from parsers.csv_parser import decode_text

logger = structlog.get_logger(__name__)

ITEM_ARRAY_KEYS = ("items", "products", "prices", "priceListItems", "articles")


def _first(data: dict, *keys: str) -> Optional[Any]:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class JsonParser(FileParser):
    """JSON arrays and price-list documents."""

    format = FileFormat.JSON
    extensions = (".json",)
    mime_types = ("application/json", "text/json")

    def extract(self, content: bytes, options: ParseOptions) -> ExtractedTable:
        text, _ = decode_text(content, options.encoding)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(
                "Invalid JSON",
                file_format=self.format.value,
                details={"line": e.lineno, "column": e.colno, "original_error": e.msg}
            )

        table = ExtractedTable()
        items = self._find_items(data, table)
        if items is None:
            raise ParseError("Unrecognized JSON layout", file_format=self.format.value)

        columns: list[str] = []
        seen = set()
        objects = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                table.warnings.append(f"Entry {index + 1} is not an object; skipped")
                continue
            objects.append(item)
            for key in item:
                if key not in seen:
                    seen.add(key)
                    columns.append(key)

        table.headers = columns
        table.rows = [[_cell(obj.get(col)) for col in columns] for obj in objects]
        return table

    def _find_items(self, data: Any, table: ExtractedTable) -> Optional[list]:
        if isinstance(data, list):
            table.metadata["layout"] = "array"
            return data

        if not isinstance(data, dict):
            return None

        meta = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        if meta:
            self._add_metadata(table, {
                "supplier_name": _first(meta, "supplierName", "supplier"),
                "currency": _first(meta, "currency", "defaultCurrency"),
                "effective_date": _first(meta, "effectiveDate", "validFrom"),
            })

        supplier = data.get("supplier")
        if isinstance(supplier, dict):
            self._add_metadata(table, {
                "supplier_name": _first(supplier, "name", "companyName"),
                "supplier_code": _first(supplier, "code", "supplierCode"),
            })

        for key in ITEM_ARRAY_KEYS:
            if isinstance(data.get(key), list):
                table.metadata["layout"] = "object"
                return data[key]

        price_list = data.get("priceList")
        if isinstance(price_list, dict) and isinstance(price_list.get("items"), list):
            table.metadata["layout"] = "nested"
            self._add_price_list_metadata(table, price_list)
            return price_list["items"]

        price_lists = data.get("priceLists")
        if isinstance(price_lists, list) and price_lists and isinstance(price_lists[0], dict):
            table.metadata["layout"] = "nested"
            if len(price_lists) > 1:
                table.warnings.append(
                    f"File contains {len(price_lists)} price lists; only the first was read"
                )
            self._add_price_list_metadata(table, price_lists[0])
            items = price_lists[0].get("items")
            return items if isinstance(items, list) else None

        return None

    def _add_price_list_metadata(self, table: ExtractedTable, price_list: dict) -> None:
        self._add_metadata(table, {
            "price_list_name": price_list.get("name"),
            "currency": price_list.get("currency"),
            "effective_date": price_list.get("effectiveDate"),
        })

    @staticmethod
    def _add_metadata(table: ExtractedTable, values: dict) -> None:
        for key, value in values.items():
            if value not in (None, ""):
                table.metadata[key] = value
