"""
Excel price-list parser.

Reads the first sheet that has any data. The header row is the first row
with a non-empty cell; rows above it (titles, logos, blank padding) are
ignored.
"""

from io import BytesIO

import pandas as pd
import structlog

from exceptions import ParseError
from models.parsed_file import FileFormat, ParseOptions
from parsers.base import ExtractedTable, FileParser
from utils.text_utils import clean_cell

logger = structlog.get_logger(__name__)


class ExcelParser(FileParser):
    """Excel workbooks (.xlsx / .xlsm) via pandas + openpyxl."""

    format = FileFormat.EXCEL
    extensions = (".xlsx", ".xlsm")
    mime_types = (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-excel.sheet.macroenabled.12",
    )

    def extract(self, content: bytes, options: ParseOptions) -> ExtractedTable:
        try:
            excel = pd.ExcelFile(BytesIO(content), engine="openpyxl")
        except Exception as e:
            logger.error("excel_read_failed", error=str(e))
            raise ParseError(
                message="Failed to read Excel file",
                file_format=self.format.value,
                details={"original_error": str(e)}
            )

        sheet_names = list(excel.sheet_names)
        table = ExtractedTable(metadata={"sheet_names": sheet_names})

        for sheet_name in sheet_names:
            df = pd.read_excel(excel, sheet_name=sheet_name, header=None)
            df = df.dropna(how="all")
            if df.empty:
                continue

            records = df.values.tolist()
            while records and not any(clean_cell(c) for c in records[0]):
                records.pop(0)

            table.headers = records[0]
            table.rows = records[1:]
            table.metadata["sheet_name"] = sheet_name

            skipped = [s for s in sheet_names if s != sheet_name]
            if skipped:
                table.warnings.append(
                    f"Read sheet '{sheet_name}'; other sheets ignored: {', '.join(map(str, skipped))}"
                )

            logger.debug("excel_sheet_selected", sheet=sheet_name, records=len(records))
            return table

        raise ParseError("Workbook has no data", file_format=self.format.value)
