"""
Tabular text parser for uploaded CSV files.

Produces header-keyed rows for the file-driven classifiers:
- Lines may end in \n or \r\n
- Whitespace-only lines are dropped
- Quoted values may contain commas; a doubled quote inside quotes is a literal quote
- Every value is trimmed, short lines are padded with ""
"""

import csv
from dataclasses import dataclass, field
from io import StringIO

import pandas as pd
import structlog

from exceptions import ValidationError

logger = structlog.get_logger(__name__)


@dataclass
class ParsedTable:
    """Header plus ordered rows (column name -> trimmed string)."""
    columns: list[str]
    rows: list[dict[str, str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def sample(self, limit: int = 5) -> list[dict[str, str]]:
        return self.rows[:limit]


def parse_csv_line(line: str) -> list[str]:
    """
    Split one CSV line into trimmed values.

    Example:
        parse_csv_line('a, "b,c" ,d')  -> ["a", "b,c", "d"]
    """
    values = next(csv.reader([line], skipinitialspace=True), [])
    return [v.strip() for v in values] if values else [""]


def parse_table(raw_text: str) -> ParsedTable:
    """
    Parse CSV text into a header and rows.

    Args:
        raw_text: Decoded file contents

    Returns:
        ParsedTable; rows are empty when the text has only a header

    Raises:
        ValidationError: If the text has no header line
    """
    lines = [line for line in raw_text.splitlines() if line.strip()]

    if not lines:
        raise ValidationError("File is empty", code="EMPTY_FILE")

    columns = parse_csv_line(lines[0])
    width = len(columns)
    rows = []

    if len(lines) > 1:
        df = pd.read_csv(
            StringIO("\n".join(lines[1:])),
            header=None,
            names=list(range(width)),
            index_col=False,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            skipinitialspace=True,
            engine="python",
            on_bad_lines=lambda bad_line: bad_line[:width],
        ).fillna("")

        for values in df.itertuples(index=False, name=None):
            rows.append({
                column: str(values[i]).strip()
                for i, column in enumerate(columns)
            })

    logger.info(
        "table_parsed",
        columns=width,
        rows=len(rows)
    )

    return ParsedTable(columns=columns, rows=rows)
