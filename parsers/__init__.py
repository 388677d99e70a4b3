"""
Uploaded file parsers.
"""

from parsers.table_parser import (
    parse_table,
    parse_csv_line,
    ParsedTable,
)

__all__ = [
    "parse_table",
    "parse_csv_line",
    "ParsedTable",
]
