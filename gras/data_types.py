"""Data types shared by the extraction, retrieval and output layers.

Catalog entries (SubjectInfo, Indicator) and run bookkeeping
(RetrievalFailure, ScrapeResult) are plain dataclasses. The scraped tables
themselves (RankingRow, SubjectTable) are pydantic models so they can be
dumped to, and loaded back from, the JSON output format.

The JSON output uses these wire names:

    {"category": ..., "subject": ..., "version": ...,
     "table": [{"ranking": ..., "name": ..., "region": ...,
                "score": ..., "indData": [...]}]}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

# Values found in the rank, score and indicator columns. Ties such as
# "101-150" are strings, most other values are numbers, blanks are None.
CellValue = Union[int, float, str, None]


class ScrapeStrategy(Enum):
    """How ranking tables are read from a loaded page.

    Values:
        STATE: Read the server-injected Nuxt state blob (default).
        DOM: Parse the rendered table and click through its pagination.
    """

    STATE = "state"
    DOM = "dom"


@dataclass(frozen=True)
class SubjectInfo:
    """One rankable subject as declared by the site's subject catalog.

    Attributes:
        category: Broad field the subject belongs to (e.g. "Natural Sciences").
        name: Subject name (e.g. "Physics").
        code: Page-route identifier (e.g. "RS0101").
        versions: Ranking editions available for this subject, in site order.
    """

    category: str
    name: str
    code: str
    versions: tuple[str, ...] = ()

    def has_version(self, version: str) -> bool:
        return version in self.versions


@dataclass(frozen=True)
class Indicator:
    """A named scoring criterion column.

    Attributes:
        name: Display name, also used as the CSV column header.
        key: Identifier used in a row's indicator map, when the site
            declares one. Lookups fall back to ``name`` when it is missing.
    """

    name: str
    key: str | None = None


class RankingRow(BaseModel):
    """One university's line in a subject ranking."""

    model_config = ConfigDict(populate_by_name=True)

    rank: CellValue = Field(alias="ranking")
    university_name: str = Field(alias="name")
    region: str = ""
    score: CellValue = None
    indicator_values: list[CellValue] = Field(
        default_factory=list, alias="indData"
    )


class SubjectTable(BaseModel):
    """All rows of one subject ranking for one edition."""

    model_config = ConfigDict(populate_by_name=True)

    category: str
    subject: str
    version: str
    rows: list[RankingRow] = Field(default_factory=list, alias="table")


@dataclass
class RetrievalFailure:
    """A (subject, version) pair that could not be scraped."""

    subject: SubjectInfo
    version: str
    error: Exception

    def summary(self) -> str:
        first_line = str(self.error).splitlines()[0] if str(self.error) else ""
        return (
            f"{self.subject.category} / {self.subject.name} "
            f"({self.subject.code}) {self.version}: "
            f"{type(self.error).__name__}: {first_line}"
        )


@dataclass
class ScrapeResult:
    """Everything a run produced.

    Attributes:
        indicators: The indicator list fixed for this run.
        tables: One SubjectTable per successfully scraped pair, in run order.
        failures: Pairs that failed, with the error that stopped them.
        cancelled: True if the run was stopped before visiting every pair.
    """

    indicators: list[Indicator] = field(default_factory=list)
    tables: list[SubjectTable] = field(default_factory=list)
    failures: list[RetrievalFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and not self.cancelled

    @property
    def row_count(self) -> int:
        return sum(len(table.rows) for table in self.tables)
