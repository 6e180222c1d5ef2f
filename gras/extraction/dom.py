"""Parsing the rendered ranking table from an HTML snapshot.

Used by the DOM retrieval strategy. The page renders one ``table.rk-table``
at a time together with an ant-design pagination control. Each snapshot is
parsed into rows here; clicking through the pages is the retriever's job.

Column layout: rank, institution, region, total score, then one column per
indicator on display. A header cell holding a selector shows the chosen
indicator in its ``<input>`` value instead of text. Region cells have no
text, only a flag image whose file stem is the region code.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from gras.common.checked_html import CheckedHtmlElement
from gras.common.exceptions import HTMLStructuralAssumptionException
from gras.data_types import CellValue, Indicator, RankingRow
from gras.extraction.state import normalize_rank

TABLE_SELECTOR = "table.rk-table"
NEXT_PAGE_SELECTOR = (
    "li.ant-pagination-next:not(.ant-pagination-disabled) > a"
)

FIXED_COLUMNS = 4

_FLAG_URL = re.compile(r"url\((['\"]?)(.*?)\1\)")
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")


@dataclass
class TablePage:
    """One snapshot's worth of parsed rows.

    Attributes:
        headers: Header cell labels in column order.
        rows: Parsed rows.
        has_next: Whether an enabled "next page" control is present.
    """

    headers: list[str]
    rows: list[RankingRow]
    has_next: bool

    @property
    def signature(self) -> tuple[CellValue, str] | None:
        """Identify the page by its first row, to detect a page change."""
        if not self.rows:
            return None
        return (self.rows[0].rank, self.rows[0].university_name)


def parse_number(text: str) -> CellValue:
    """Convert a cell's text to int or float where it is plainly numeric."""
    text = text.strip()
    if not text:
        return None
    if _NUMBER.match(text):
        return float(text) if "." in text else int(text)
    return text


def _normalize_label(label: str) -> str:
    return " ".join(label.split()).casefold()


def _header_label(cell: CheckedHtmlElement) -> str:
    label = cell.text()
    if label:
        return " ".join(label.split())
    values = cell.checked_xpath(
        ".//input/@value", "header selector value", min_count=0, type=str
    )
    return values[0].strip() if values else ""


def _region(cell: CheckedHtmlElement) -> str:
    text = cell.text()
    if text:
        return text
    styles = cell.checked_xpath(
        ".//div[contains(@class, 'region-img')]/@style",
        "region flag style",
        min_count=0,
        type=str,
    )
    if not styles:
        return ""
    match = _FLAG_URL.search(styles[0])
    if not match:
        return ""
    url = match.group(2)
    stem = url.rsplit("/", 1)[-1].rsplit(".", 1)[0]
    return stem.upper()


def _university_name(cell: CheckedHtmlElement) -> str:
    names = cell.checked_css("span.univ-name", "university name", min_count=0)
    if names:
        return names[0].text()
    return cell.text()


def indicator_columns(
    headers: list[str], indicators: list[Indicator]
) -> dict[int, int]:
    """Map indicator positions to table columns by header label."""
    by_label = {
        _normalize_label(label): column
        for column, label in enumerate(headers)
        if column >= FIXED_COLUMNS and label
    }
    mapping: dict[int, int] = {}
    for position, indicator in enumerate(indicators):
        column = by_label.get(_normalize_label(indicator.name))
        if column is not None:
            mapping[position] = column
    return mapping


def parse_table_page(
    text: str, indicators: list[Indicator], request_url: str = ""
) -> TablePage:
    """Parse one rendered ranking table snapshot.

    Raises:
        HTMLStructuralAssumptionException: If the table or its header is
            missing, or a row has fewer cells than the fixed columns.
    """
    tree = CheckedHtmlElement.from_html(text, request_url)
    table = tree.checked_css(TABLE_SELECTOR, "ranking table", 1, 1)[0]

    headers = [
        _header_label(cell)
        for cell in table.checked_css(
            "th", "header cells", min_count=FIXED_COLUMNS
        )
    ]
    columns = indicator_columns(headers, indicators)

    rows: list[RankingRow] = []
    for row in table.checked_css("tr", "table rows", min_count=0):
        cells = row.checked_css("td", "row cells", min_count=0)
        if not cells:
            continue
        if len(cells) < FIXED_COLUMNS:
            raise HTMLStructuralAssumptionException(
                selector="td",
                selector_type="css",
                description="row cells",
                expected_min=FIXED_COLUMNS,
                expected_max=None,
                actual_count=len(cells),
                request_url=request_url,
            )

        values: list[CellValue] = []
        for position in range(len(indicators)):
            column = columns.get(position)
            if column is None or column >= len(cells):
                values.append(None)
            else:
                values.append(parse_number(cells[column].text()))

        rows.append(
            RankingRow(
                rank=normalize_rank(cells[0].text()),
                university_name=_university_name(cells[1]),
                region=_region(cells[2]),
                score=parse_number(cells[3].text()),
                indicator_values=values,
            )
        )

    has_next = bool(
        tree.checked_css(NEXT_PAGE_SELECTOR, "next page link", min_count=0)
    )
    return TablePage(headers=headers, rows=rows, has_next=has_next)
