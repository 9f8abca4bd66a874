"""
Parsed file schemas.

Output of the format parsers: rows keyed by original header text, with
numeric/currency cells normalized alongside the raw strings.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field

from config.settings import settings
from models.base import BaseSchema, FrozenSchema


class FileFormat(str, Enum):
    """Supported price-list file formats."""
    CSV = "csv"
    EXCEL = "excel"
    JSON = "json"
    XML = "xml"
    PDF = "pdf"
    WORD = "word"
    EMAIL = "email"


class MoneyValue(FrozenSchema):
    """Amount parsed from a cell, with the currency it carried (if any)."""

    amount: Decimal
    currency: Optional[str] = Field(None, description="ISO 4217 code found in the cell")


class ParsedRow(FrozenSchema):
    """
    One data row of a parsed file.

    values holds every cell as text keyed by header; amounts holds the
    subset of cells that parsed as a number or currency amount.
    """

    row_number: int = Field(..., ge=1, description="1-based data row number")
    values: dict[str, str] = Field(default_factory=dict)
    amounts: dict[str, MoneyValue] = Field(default_factory=dict)

    def get(self, header: str) -> Optional[str]:
        return self.values.get(header)


class ParseOptions(BaseSchema):
    """Limits and hints passed to a parser."""

    max_file_size_bytes: int = Field(
        default_factory=lambda: settings.max_file_size_bytes,
        gt=0
    )
    max_rows: int = Field(default_factory=lambda: settings.max_rows, gt=0)
    encoding: Optional[str] = Field(None, description="Text encoding; sniffed when omitted")
    delimiter: Optional[str] = Field(None, description="CSV delimiter; sniffed when omitted")
    extraction_timeout_seconds: float = Field(
        default_factory=lambda: settings.extraction_timeout_seconds,
        gt=0
    )
    preview_rows: int = Field(default=5, ge=0)


class FileMetadata(BaseSchema):
    """What is known about an uploaded file."""

    filename: str
    mime_type: Optional[str] = None
    size_bytes: int = Field(default=0, ge=0)
    detected_format: Optional[FileFormat] = None
