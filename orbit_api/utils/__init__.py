# orbit_api/utils/__init__.py
"""
File parsing helpers for bulk imports.
"""

from orbit_api.utils.csv_parser import parse_csv_rows
from orbit_api.utils.excel_parser import parse_excel_rows

__all__ = [
    "parse_csv_rows",
    "parse_excel_rows",
]
