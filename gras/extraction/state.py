"""Reading the Nuxt state blob embedded in GRAS ranking pages.

Every ranking page injects ``window.__NUXT__``. Its ``data[0]`` entry
carries three things this package needs:

- ``subjectList``: categories, each with a ``detail`` list of subjects
  (``nameEn``, ``code`` and a comma-joined ``versions`` string)
- ``indList``: the indicator columns, in display order
- ``deepUnivData``: the ranking itself, split into page-sized chunks

All knowledge of that layout lives in this module.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from gras.common.exceptions import (
    MalformedDataError,
    NavigationError,
    StateNotFoundError,
)
from gras.common.page_session import PageSession
from gras.data_types import (
    CellValue,
    Indicator,
    RankingRow,
    SubjectInfo,
    SubjectTable,
)

logger = logging.getLogger(__name__)

STATE_EXPRESSION = "() => window.__NUXT__"
READY_KEY = "subjectList"


# =============================================================================
# Raw state models
# =============================================================================


class _RawModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RawSubject(_RawModel):
    name_en: str = Field(alias="nameEn")
    code: str
    versions: str = ""


class RawCategory(_RawModel):
    name_en: str = Field(alias="nameEn")
    detail: list[RawSubject] = Field(default_factory=list)


class RawIndicator(_RawModel):
    name_en: str = Field(alias="nameEn")
    code: str | None = None


class RawUniversity(_RawModel):
    ranking: CellValue = None
    univ_name_en: str = Field(alias="univNameEn")
    region: str | None = None
    score: CellValue = None
    ind_data: dict[str, CellValue] = Field(
        default_factory=dict, alias="indData"
    )


def _validate(model: type[_RawModel], doc: Any, request_url: str) -> Any:
    try:
        return model.model_validate(doc)
    except ValidationError as e:
        raise MalformedDataError(
            f"Embedded state entry does not match {model.__name__}",
            request_url,
            errors=[dict(err) for err in e.errors()],
            failed_doc=doc,
            model_name=model.__name__,
        ) from e


def _require_list(
    state: Mapping[str, Any], key: str, request_url: str
) -> list:
    value = state.get(key)
    if not isinstance(value, list):
        raise MalformedDataError(
            f"Embedded state has no '{key}' list",
            request_url,
            failed_doc={"keys": sorted(state)},
        )
    return value


# =============================================================================
# Polling
# =============================================================================


def describe_shape(value: Any) -> str:
    """Summarize an observed state value for error messages."""
    if value is None:
        return "no state"
    if not isinstance(value, Mapping):
        return f"a {type(value).__name__}"
    data = value.get("data")
    if not isinstance(data, list) or not data:
        return "state without a data list"
    first = data[0]
    if not isinstance(first, Mapping):
        return f"data[0] of type {type(first).__name__}"
    return f"data[0] keys {sorted(first)[:8]}"


def ready_entry(value: Any) -> Mapping[str, Any] | None:
    """Return ``data[0]`` if the state has finished hydrating, else None."""
    if not isinstance(value, Mapping):
        return None
    data = value.get("data")
    if not isinstance(data, list) or not data:
        return None
    first = data[0]
    if isinstance(first, Mapping) and READY_KEY in first:
        return first
    return None


class StateExtractor:
    """Poll a loaded page until its embedded state is ready.

    Args:
        timeout: Seconds to keep polling before giving up.
        poll_interval: Seconds between polls.
    """

    def __init__(self, timeout: float = 30.0, poll_interval: float = 0.25):
        self.timeout = timeout
        self.poll_interval = poll_interval

    async def extract(self, session: PageSession) -> Mapping[str, Any]:
        """Return the page's ``data[0]`` state entry.

        A NavigationError while polling (the page is still swapping
        documents) counts as "not ready yet".

        Raises:
            StateNotFoundError: If the state never had the expected shape
                within the timeout.
        """
        deadline = time.monotonic() + self.timeout
        last_shape = "nothing"

        while True:
            try:
                value = await session.evaluate(STATE_EXPRESSION)
            except NavigationError as e:
                logger.debug(f"State poll on {session.url} failed: {e}")
                last_shape = "an evaluation error"
            else:
                entry = ready_entry(value)
                if entry is not None:
                    return entry
                last_shape = describe_shape(value)

            if time.monotonic() >= deadline:
                raise StateNotFoundError(
                    session.url, self.timeout, last_shape
                )
            await asyncio.sleep(self.poll_interval)


# =============================================================================
# Catalog and indicators
# =============================================================================


def split_versions(versions: str) -> tuple[str, ...]:
    """Split the site's comma-joined edition list, keeping its order."""
    return tuple(v.strip() for v in versions.split(",") if v.strip())


def build_catalog(
    state: Mapping[str, Any], request_url: str = ""
) -> list[SubjectInfo]:
    """Flatten ``subjectList`` into one SubjectInfo per subject.

    Raises:
        MalformedDataError: If the list is missing or an entry is malformed.
    """
    catalog: list[SubjectInfo] = []
    for raw_category in _require_list(state, "subjectList", request_url):
        category = _validate(RawCategory, raw_category, request_url)
        for subject in category.detail:
            catalog.append(
                SubjectInfo(
                    category=category.name_en,
                    name=subject.name_en,
                    code=subject.code,
                    versions=split_versions(subject.versions),
                )
            )
    return catalog


def parse_indicators(
    state: Mapping[str, Any], request_url: str = ""
) -> list[Indicator]:
    """Read the indicator columns from ``indList``.

    Raises:
        MalformedDataError: If the list is missing or an entry is malformed.
    """
    indicators = []
    for raw in _require_list(state, "indList", request_url):
        indicator = _validate(RawIndicator, raw, request_url)
        indicators.append(
            Indicator(name=indicator.name_en, key=indicator.code)
        )
    return indicators


# =============================================================================
# Ranking tables
# =============================================================================


def normalize_rank(value: CellValue) -> CellValue:
    """Turn all-digit rank strings into ints; ties like "101-150" stay text."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            return int(stripped)
        return stripped
    return value


def align_indicators(
    ind_data: Mapping[str, CellValue],
    indicators: list[Indicator],
    request_url: str = "",
) -> list[CellValue]:
    """Order a row's indicator map by the declared indicator list.

    Each indicator is looked up by its key first and by its name second.
    Indicators absent from the map yield None.

    Raises:
        MalformedDataError: If the map has values but none of its keys
            names a declared indicator.
    """
    labels = {indicator.name for indicator in indicators}
    labels.update(i.key for i in indicators if i.key is not None)
    if ind_data and indicators and labels.isdisjoint(ind_data):
        declared = ", ".join(
            indicator.key or indicator.name for indicator in indicators
        )
        raise MalformedDataError(
            f"indData keys {sorted(ind_data)} match no declared indicator "
            f"({declared})",
            request_url,
            failed_doc=dict(ind_data),
        )

    values: list[CellValue] = []
    for indicator in indicators:
        if indicator.key is not None and indicator.key in ind_data:
            values.append(ind_data[indicator.key])
        else:
            values.append(ind_data.get(indicator.name))
    return values


def parse_ranking_state(
    state: Mapping[str, Any],
    subject: SubjectInfo,
    version: str,
    indicators: list[Indicator],
    request_url: str = "",
) -> SubjectTable:
    """Concatenate every ``deepUnivData`` chunk into one SubjectTable.

    Raises:
        MalformedDataError: If the chunks are missing or an entry is malformed.
    """
    rows: list[RankingRow] = []
    chunks = _require_list(state, "deepUnivData", request_url)

    for index, chunk in enumerate(chunks):
        if not isinstance(chunk, list):
            raise MalformedDataError(
                f"deepUnivData chunk {index} is not a list",
                request_url,
                failed_doc=chunk,
            )
        for raw in chunk:
            university = _validate(RawUniversity, raw, request_url)
            rows.append(
                RankingRow(
                    rank=normalize_rank(university.ranking),
                    university_name=university.univ_name_en.strip(),
                    region=(university.region or "").strip(),
                    score=university.score,
                    indicator_values=align_indicators(
                        university.ind_data, indicators, request_url
                    ),
                )
            )

    logger.debug(
        f"{subject.code} {version}: {len(rows)} rows from "
        f"{len(chunks)} chunk(s)"
    )
    return SubjectTable(
        category=subject.category,
        subject=subject.name,
        version=version,
        rows=rows,
    )
