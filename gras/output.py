"""Serializing collected ranking tables to JSON or CSV.

JSON output is the list of tables as-is, using the wire names described in
gras.data_types. CSV output flattens every row with its table's edition,
category and subject prepended:

    Year,Category,Subject,Ranking,Name,Region,Score,<indicator names...>

Every CSV field is quoted. Newlines, carriage returns and tabs inside a
value are removed rather than escaped, so multi-line text is flattened.
Embedded double quotes are doubled. None becomes an empty field.
"""

from __future__ import annotations

import csv
import io
import json
import re
from collections.abc import Iterable
from pathlib import Path

from gras.data_types import CellValue, Indicator, SubjectTable

CSV_FIXED_HEADER = [
    "Year",
    "Category",
    "Subject",
    "Ranking",
    "Name",
    "Region",
    "Score",
]

_CONTROL_WHITESPACE = re.compile(r"[\n\r\t]")


def sanitize(value: CellValue) -> str:
    """Render a value as CSV field text with line breaks and tabs removed."""
    if value is None:
        return ""
    return _CONTROL_WHITESPACE.sub("", str(value))


def to_json(tables: Iterable[SubjectTable]) -> str:
    """Serialize tables to a JSON array."""
    return json.dumps(
        [
            table.model_dump(mode="json", by_alias=True)
            for table in tables
        ],
        ensure_ascii=False,
    )


def tables_from_json(text: str) -> list[SubjectTable]:
    """Load tables back from to_json() output."""
    return [SubjectTable.model_validate(item) for item in json.loads(text)]


def csv_header(indicators: list[Indicator]) -> list[str]:
    return CSV_FIXED_HEADER + [indicator.name for indicator in indicators]


def to_csv(
    tables: Iterable[SubjectTable], indicators: list[Indicator]
) -> str:
    """Flatten tables to CSV text, one line per ranking row."""
    buffer = io.StringIO()
    writer = csv.writer(
        buffer, quoting=csv.QUOTE_ALL, lineterminator="\n"
    )
    writer.writerow([sanitize(name) for name in csv_header(indicators)])

    for table in tables:
        for row in table.rows:
            writer.writerow(
                [
                    sanitize(table.version),
                    sanitize(table.category),
                    sanitize(table.subject),
                    sanitize(row.rank),
                    sanitize(row.university_name),
                    sanitize(row.region),
                    sanitize(row.score),
                    *(sanitize(value) for value in row.indicator_values),
                ]
            )

    return buffer.getvalue()


def render(
    tables: Iterable[SubjectTable], indicators: list[Indicator], fmt: str
) -> str:
    """Render tables in the given output format ("json" or "csv")."""
    if fmt == "csv":
        return to_csv(tables, indicators)
    if fmt == "json":
        return to_json(tables)
    raise ValueError(f"Unknown output format: {fmt}")


def write_output(text: str, destination: str | Path) -> Path:
    """Write rendered output, creating parent directories as needed."""
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path
