"""Excel file parser for bulk record imports."""
from __future__ import annotations

import io
from typing import Dict, List, Optional

import pandas as pd

from orbit_api.core.logging import get_structlog_logger

logger = get_structlog_logger()


def _cell_text(val) -> Optional[str]:
    # Whole-number floats come back from pandas as 1200.0
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    str_val = str(val).strip()
    return str_val or None


def parse_excel_rows(
    file_content: bytes,
    sheet_name: Optional[str] = None,
) -> List[Dict[str, str]]:
    """
    Parse the first (or named) sheet of an .xlsx workbook into row dictionaries.
    """
    try:
        excel_file = io.BytesIO(file_content)

        df = pd.read_excel(
            excel_file,
            sheet_name=sheet_name or 0,
            engine="openpyxl",
        )

        rows = []
        for idx, row in df.iterrows():
            row_data = {}
            for col, val in row.items():
                if pd.notna(val):
                    text = _cell_text(val)
                    if text:
                        row_data[str(col).strip()] = text

            # Skip empty rows
            if not row_data:
                continue

            rows.append(row_data)

        logger.info(
            "excel_parser.parsed",
            total_rows=len(rows),
            sheet_name=sheet_name,
        )

        return rows

    except Exception as e:
        logger.error("excel_parser.parse_error", error=str(e))
        raise ValueError(f"Failed to parse Excel file: {str(e)}")
