"""CSV file parser for bulk record imports."""
from __future__ import annotations

import csv
import io
from typing import Dict, List, Optional

from orbit_api.core.logging import get_structlog_logger

logger = get_structlog_logger()


def parse_csv_rows(
    file_content: bytes,
    encoding: str = "utf-8-sig",
    delimiter: str = ",",
) -> List[Dict[str, Optional[str]]]:
    """
    Parse CSV file and return one dictionary per non-empty row.

    Header names are kept as written; mapping them onto entity fields is the
    importer's job.
    """
    try:
        text_content = file_content.decode(encoding)

        reader = csv.DictReader(io.StringIO(text_content), delimiter=delimiter)

        rows = []
        for row_num, row in enumerate(reader, start=2):  # Start at 2 (header is row 1)
            try:
                row_data = {
                    k.strip(): v.strip() if isinstance(v, str) and v.strip() else None
                    for k, v in row.items()
                    if k and k.strip()
                }

                # Skip empty rows
                if not any(row_data.values()):
                    continue

                rows.append(row_data)

            except AttributeError as e:
                logger.warning(
                    "csv_parser.row_error",
                    row_number=row_num,
                    error=str(e),
                )
                continue

        logger.info(
            "csv_parser.parsed",
            total_rows=len(rows),
            encoding=encoding,
        )

        return rows

    except UnicodeDecodeError as e:
        logger.error("csv_parser.decode_error", encoding=encoding, error=str(e))
        raise ValueError(f"Failed to decode CSV file with encoding {encoding}")
    except csv.Error as e:
        logger.error("csv_parser.parse_error", error=str(e))
        raise ValueError(f"Failed to parse CSV file: {str(e)}")
