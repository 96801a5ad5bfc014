"""Tests for the Fuzzy Search Engine: variations, ranking, dedup and pagination."""

import pytest
from sqlalchemy.exc import OperationalError

from georef.core.exceptions import BackendUnavailableError
from georef.services.search_service import (
    FuzzySearchEngine,
    build_variations,
    dedupe,
    expand_abbreviations,
    parse_levels,
)

from conftest import seed


@pytest.fixture
def search_engine(hierarchy, session_factory):
    return FuzzySearchEngine(session_factory, max_workers=4)


class TestVariations:

    def test_basic_patterns_first(self):
        variations = build_variations("  Bacoor ")
        assert variations[:3] == ["%bacoor%", "bacoor%", "%bacoor"]

    def test_abbreviation_expansion(self):
        variations = build_variations("qc")
        assert "%quezon city%" in variations
        assert "%quezoncity%" in variations

    def test_abbreviations_match_whole_words(self):
        assert expand_abbreviations("qcx") == []
        assert expand_abbreviations("cav") == ["cavite"]
        assert expand_abbreviations("bacoor cav") == ["bacoor cavite", "cavite"]

    def test_multi_word_query(self):
        variations = build_variations("san jose")
        assert "%san%" in variations
        assert "%jose%" in variations
        assert "%jose san%" in variations

    def test_locality_prefix_forms(self):
        variations = build_variations("city of manila")
        assert "%manila%" in variations
        assert "%manila city%" in variations

        variations = build_variations("makati city")
        assert "%makati%" in variations
        assert "%city of makati%" in variations

    def test_user_wildcards_escaped(self):
        assert build_variations("50%_off")[0] == "%50\\%\\_off%"

    def test_unique_and_capped(self):
        variations = build_variations("a b c d e f g h i j k l m n o p", max_variations=5)
        assert len(variations) == 5
        assert len(set(build_variations("quezon city quezon"))) == len(build_variations("quezon city quezon"))

    def test_empty_query(self):
        assert build_variations("   ") == []


class TestParseLevels:

    def test_default_is_city(self):
        assert parse_levels(None) == ["city"]
        assert parse_levels("") == ["city"]

    def test_all(self):
        assert parse_levels("all") == ["region", "province", "city", "barangay"]

    def test_subset_keeps_order_and_drops_unknown(self):
        assert parse_levels("barangay, City,district,city") == ["barangay", "city"]
        assert parse_levels("district") == ["city"]


class TestSearch:

    def test_abbreviation_ranked_first(self, search_engine):
        result = search_engine.search("qc", levels=["city"])

        assert result["data"][0]["name"] == "Quezon City"
        match = result["data"][0]
        assert match["province_code"] is None
        assert match["region_name"] == "National Capital Region (NCR)"
        assert match["full_address"] == "Quezon City, National Capital Region (NCR)"

    def test_province_name_surfaces_children(self, search_engine):
        result = search_engine.search("cavite", levels=["city", "barangay"])

        names = {m["name"] for m in result["data"]}
        assert {"Bacoor", "Imus", "Alima", "Aniban I"} <= names
        assert all(m["province_name"] == "Cavite" for m in result["data"])

    def test_exact_match_outranks_prefix(self, search_engine):
        result = search_engine.search("bacoor", levels=["city", "barangay"])

        assert result["data"][0]["code"] == "041419"
        assert result["data"][0]["type"] == "City"
        # Barangays of Bacoor come through the city-name match
        assert {"Alima", "Aniban I"} <= {m["name"] for m in result["data"]}

    def test_prefix_matches_before_others(self, search_engine):
        result = search_engine.search("ba", levels=["city", "barangay"])

        starts = [m["name"].lower().startswith("ba") for m in result["data"]]
        assert any(starts)
        assert starts == sorted(starts, reverse=True)

    def test_same_city_group_puts_higher_level_first(self, search_engine):
        result = search_engine.search("bacoor", levels=["city", "barangay"])
        others = result["data"][1:]
        assert [m["name"] for m in others] == ["Alima", "Aniban I"]

    def test_no_duplicate_codes(self, search_engine):
        result = search_engine.search("ba", levels=parse_levels("all"), limit=100)
        codes = [m["code"] for m in result["data"]]
        assert len(codes) == len(set(codes))

    def test_pagination(self, search_engine):
        first = search_engine.search("ba", levels=["city", "barangay"], limit=2)

        assert first["count"] == 2
        assert len(first["data"]) == 2
        assert first["hasMore"] is True
        assert first["totalCount"] > 2

        second = search_engine.search("ba", levels=["city", "barangay"], limit=2, offset=2)
        assert second["offset"] == 2
        assert not {m["code"] for m in first["data"]} & {m["code"] for m in second["data"]}

    def test_page_size_capped(self, hierarchy, session_factory):
        capped = FuzzySearchEngine(session_factory, max_page_size=3)
        result = capped.search("ba", levels=["city", "barangay"], limit=500)

        assert result["count"] == 3
        assert result["hasMore"] is True

    def test_total_count_is_bounded_by_query_caps(self, hierarchy, session_factory):
        seed(hierarchy, cities=[
            {"code": f"04149{i}", "name": f"Silang {letter}", "province_code": "0414", "type": "Municipality",
             "is_independent": False, "is_active": True}
            for i, letter in enumerate("ABCDE")
        ])
        capped = FuzzySearchEngine(session_factory, caps={"city": 2, "city_by_province": 2})

        result = capped.search("silang", levels=["city"], limit=20)

        # Five cities match, but each query stops at its cap
        assert [m["name"] for m in result["data"]] == ["Silang A", "Silang B"]
        assert result["totalCount"] == 2
        assert result["hasMore"] is False

    @pytest.mark.parametrize("query", ["", " ", "q", None])
    def test_short_query_returns_empty(self, search_engine, query):
        assert search_engine.search(query) == {
            "data": [], "count": 0, "totalCount": 0, "offset": 0, "hasMore": False,
        }

    def test_no_match(self, search_engine):
        result = search_engine.search("zzzz", levels=["city"])
        assert result["data"] == []
        assert result["hasMore"] is False

    def test_inactive_rows_excluded(self, search_engine, hierarchy):
        seed(hierarchy, cities=[{"code": "041421", "name": "Bacoor Old", "province_code": "0414",
                                 "type": "City", "is_independent": False, "is_active": False}])
        result = search_engine.search("bacoor old", levels=["city"])
        assert all(m["code"] != "041421" for m in result["data"])

    def test_backend_failure(self, hierarchy):
        def broken_factory():
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        engine = FuzzySearchEngine(broken_factory)
        with pytest.raises(BackendUnavailableError):
            engine.search("bacoor")


class TestDedupe:

    def test_first_occurrence_wins(self):
        rows = [
            {"code": "1", "name": "first"},
            {"code": "2", "name": "other"},
            {"code": "1", "name": "second"},
        ]
        assert dedupe(rows) == [{"code": "1", "name": "first"}, {"code": "2", "name": "other"}]
