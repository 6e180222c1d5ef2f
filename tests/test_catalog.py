"""Tests for reading the subject catalog and indicator list."""

import pytest

from gras.common.exceptions import MalformedDataError
from gras.data_types import Indicator, SubjectInfo
from gras.extraction.state import (
    build_catalog,
    parse_indicators,
    split_versions,
)
from tests.utils import make_state


class TestBuildCatalog:
    """Tests for flattening subjectList."""

    def test_one_entry_per_subject_with_its_category(self, catalog) -> None:
        """Each subject shall carry the category it is listed under."""
        assert catalog == [
            SubjectInfo(
                "Natural Sciences",
                "Mathematics",
                "RS0101",
                ("2021", "2022", "2023"),
            ),
            SubjectInfo(
                "Natural Sciences", "Physics", "RS0102", ("2022", "2023")
            ),
            SubjectInfo(
                "Engineering", "Mechanical Engineering", "RS0201", ("2023",)
            ),
        ]

    def test_versions_keep_site_order(self) -> None:
        state = make_state(
            subject_list=[
                {
                    "nameEn": "Life Sciences",
                    "detail": [
                        {
                            "nameEn": "Biology",
                            "code": "RS0301",
                            "versions": "2023,2017, 2020",
                        }
                    ],
                }
            ]
        )["data"][0]

        (subject,) = build_catalog(state)

        assert subject.versions == ("2023", "2017", "2020")
        assert subject.has_version("2020")
        assert not subject.has_version("2019")

    def test_category_without_subjects_contributes_nothing(self) -> None:
        state = make_state(
            subject_list=[{"nameEn": "Empty", "detail": []}]
        )["data"][0]

        assert build_catalog(state) == []

    def test_missing_subject_list_is_malformed(self) -> None:
        """A state without subjectList shall raise MalformedDataError."""
        with pytest.raises(MalformedDataError) as exc_info:
            build_catalog({"indList": []}, request_url="https://x/2023/RS0101")

        assert "subjectList" in exc_info.value.message
        assert exc_info.value.request_url == "https://x/2023/RS0101"

    def test_subject_without_code_is_malformed(self) -> None:
        state = make_state(
            subject_list=[
                {"nameEn": "Broken", "detail": [{"nameEn": "No Code"}]}
            ]
        )["data"][0]

        with pytest.raises(MalformedDataError) as exc_info:
            build_catalog(state)

        assert exc_info.value.model_name == "RawCategory"
        assert exc_info.value.errors


class TestParseIndicators:
    """Tests for reading indList."""

    def test_names_and_keys_in_display_order(self, indicators) -> None:
        assert [ind.name for ind in indicators] == [
            "Q1",
            "CNCI",
            "IC",
            "TOP",
            "AWARD",
        ]
        assert indicators[0] == Indicator(name="Q1", key="q1")

    def test_key_is_optional(self) -> None:
        state = make_state(ind_list=[{"nameEn": "PUB"}])["data"][0]

        assert parse_indicators(state) == [Indicator(name="PUB", key=None)]

    def test_missing_ind_list_is_malformed(self) -> None:
        with pytest.raises(MalformedDataError):
            parse_indicators({"subjectList": []})


def test_split_versions_ignores_blanks() -> None:
    assert split_versions("") == ()
    assert split_versions("2022,,2023,") == ("2022", "2023")
