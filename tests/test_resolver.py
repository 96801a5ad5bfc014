"""Tests for the Hierarchy Resolver and browse helpers."""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query

from georef.core.exceptions import (
    AncestorNotFoundError,
    BackendUnavailableError,
    CodeNotFoundError,
    InvalidCodeError,
)
from georef.services.hierarchy_resolver import HierarchyResolver

from conftest import seed


class TestResolve:

    def test_city_chain(self, hierarchy):
        result = HierarchyResolver(hierarchy).resolve("041419")

        assert result["level"] == "city"
        assert [link["level"] for link in result["chain"]] == ["region", "province", "city"]
        assert result["full_address"] == "Bacoor, Cavite, Region IV-A"
        assert result["province_code"] == "0414"
        assert result["region_name"] == "Region IV-A"
        assert result["is_independent"] is False

    def test_barangay_chain(self, hierarchy):
        result = HierarchyResolver(hierarchy).resolve("0414190001")

        assert len(result["chain"]) == 4
        assert result["barangay_name"] == "Alima"
        assert result["city_code"] == "041419"
        assert result["full_address"] == "Alima, Bacoor, Cavite, Region IV-A"

    def test_region_and_province(self, hierarchy):
        resolver = HierarchyResolver(hierarchy)

        region = resolver.resolve("04")
        assert region["chain"] == [{"level": "region", "code": "04", "name": "Region IV-A"}]
        assert region["full_address"] == "Region IV-A"

        province = resolver.resolve("0434")
        assert province["full_address"] == "Laguna, Region IV-A"
        assert "city_code" not in province

    def test_independent_city_skips_province(self, hierarchy):
        result = HierarchyResolver(hierarchy).resolve("137404")

        assert len(result["chain"]) == 3
        assert result["chain"][1] == {"level": "province", "code": None, "name": None}
        assert result["province_code"] is None
        assert result["region_code"] == "13"
        assert result["full_address"] == "Quezon City, National Capital Region (NCR)"

    def test_barangay_of_independent_city(self, hierarchy):
        result = HierarchyResolver(hierarchy).resolve("1374040001")
        assert result["full_address"] == "Bagong Pag-asa, Quezon City, National Capital Region (NCR)"

    @pytest.mark.parametrize("code", ["123", "1234567", "04a4", ""])
    def test_invalid_code(self, hierarchy, code):
        with pytest.raises(InvalidCodeError):
            HierarchyResolver(hierarchy).resolve(code)

    def test_code_not_found(self, hierarchy):
        with pytest.raises(CodeNotFoundError) as exc_info:
            HierarchyResolver(hierarchy).resolve("0499")

        assert not isinstance(exc_info.value, AncestorNotFoundError)
        assert exc_info.value.to_dict()["error"] == "not_found"

    def test_missing_ancestor_is_raised(self, hierarchy):
        seed(hierarchy, cities=[{"code": "049901", "name": "Lost Town", "province_code": "0499",
                                 "type": "Municipality", "is_independent": False, "is_active": True}])

        with pytest.raises(AncestorNotFoundError) as exc_info:
            HierarchyResolver(hierarchy).resolve("049901")

        error = exc_info.value
        assert error.level == "province"
        assert error.code == "0499"
        assert error.child_code == "049901"
        assert error.to_dict()["error"] == "ancestor_not_found"

    def test_missing_region_of_independent_city(self, hierarchy):
        seed(hierarchy, cities=[{"code": "170101", "name": "Far City", "province_code": None,
                                 "type": "City", "is_independent": True, "is_active": True}])

        with pytest.raises(AncestorNotFoundError) as exc_info:
            HierarchyResolver(hierarchy).resolve("170101")
        assert exc_info.value.code == "17"

    def test_city_without_province_reference_is_missing_link(self, hierarchy):
        seed(hierarchy, cities=[{"code": "041499", "name": "No Ref", "province_code": None,
                                 "type": "Municipality", "is_independent": False, "is_active": True}])

        with pytest.raises(AncestorNotFoundError) as exc_info:
            HierarchyResolver(hierarchy).resolve("041499")

        error = exc_info.value
        assert error.level == "province"
        assert error.code is None
        assert error.child_code == "041499"


class TestLookupAddress:

    def test_labels(self, hierarchy):
        labels = HierarchyResolver(hierarchy).lookup_address("04", "0414", "041419", "0414190002")
        assert labels == {
            "region": "Region IV-A",
            "province": "Cavite",
            "city": "Bacoor",
            "barangay": "Aniban I",
            "full_address": "Aniban I, Bacoor, Cavite, Region IV-A",
        }

    def test_unknown_codes_are_null(self, hierarchy):
        labels = HierarchyResolver(hierarchy).lookup_address("13", None, "137404", "9999999999")
        assert labels["province"] is None
        assert labels["barangay"] is None
        assert labels["full_address"] == "Quezon City, National Capital Region (NCR)"


class TestBrowse:

    def test_regions_ordered_by_name(self, hierarchy):
        names = [r.name for r in HierarchyResolver(hierarchy).list_regions()]
        assert names == ["National Capital Region (NCR)", "Region IV-A"]

    def test_provinces_by_region(self, hierarchy):
        resolver = HierarchyResolver(hierarchy)
        assert [p.code for p in resolver.list_provinces("04")] == ["0414", "0434"]
        assert resolver.list_provinces("13") == []

    def test_cities_by_province(self, hierarchy):
        names = [c.name for c in HierarchyResolver(hierarchy).list_cities("0414")]
        assert names == ["Bacoor", "Imus"]

    def test_independent_cities(self, hierarchy):
        names = [c.name for c in HierarchyResolver(hierarchy).list_independent_cities("13")]
        assert names == ["City of Manila", "Quezon City"]

    def test_barangays_by_city(self, hierarchy):
        names = [b.name for b in HierarchyResolver(hierarchy).list_barangays("041419")]
        assert names == ["Alima", "Aniban I"]

    def test_inactive_rows_hidden(self, hierarchy):
        seed(hierarchy, provinces=[{"code": "0456", "name": "Quezon", "region_code": "04", "is_active": False}])
        assert [p.code for p in HierarchyResolver(hierarchy).list_provinces("04")] == ["0414", "0434"]

    @pytest.mark.parametrize("method,args", [
        ("list_regions", ()),
        ("list_provinces", ("04",)),
        ("list_cities", ("0414",)),
        ("list_independent_cities", ("13",)),
        ("list_barangays", ("041419",)),
    ])
    def test_store_failure_is_backend_error(self, hierarchy, monkeypatch, method, args):
        def broken(self):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        monkeypatch.setattr(Query, "all", broken)
        with pytest.raises(BackendUnavailableError):
            getattr(HierarchyResolver(hierarchy), method)(*args)
