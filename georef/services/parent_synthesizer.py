"""
Parent Synthesizer

When children reference a parent code that does not exist, derives a
placeholder parent from the structural code prefix:

    Barangay 9999990001 → City "999999" → Province "9999" → Region "99"

Placeholder names follow a fixed convention so an authoritative re-import
(same upsert key) can overwrite them and so the audit can count them:

    Region <code>
    Province <code> (<region name>)
    City/Municipality <code> (<province name>)

This is best-effort extrapolation, not authoritative data. Writes are
insert-only: an existing row is never modified.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from georef.config.hierarchy import prefix_for
from georef.models.psgc import Region, Province, CityMunicipality, Barangay
from georef.services import psgc_store

logger = logging.getLogger(__name__)


PLACEHOLDER_PATTERNS = {
    "region": re.compile(r"^Region \d{2}$"),
    "province": re.compile(r"^Province \d{4}( \(.*\))?$"),
    "city": re.compile(r"^City/Municipality \d{6}( \(.*\))?$"),
}


def is_placeholder_name(level: str, name: Optional[str]) -> bool:
    """True when `name` follows the synthesized-row naming convention."""
    pattern = PLACEHOLDER_PATTERNS.get(level)
    return bool(pattern and name and pattern.match(name))


def placeholder_name(level: str, code: str, ancestor_name: Optional[str] = None) -> str:
    if level == "region":
        return f"Region {code}"
    label = "Province" if level == "province" else "City/Municipality"
    if ancestor_name:
        return f"{label} {code} ({ancestor_name})"
    return f"{label} {code}"


@dataclass
class SynthesisResult:
    regions: List[str] = field(default_factory=list)
    provinces: List[str] = field(default_factory=list)
    cities: List[str] = field(default_factory=list)
    repaired_city_references: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.regions) + len(self.provinces) + len(self.cities)

    def to_dict(self) -> Dict[str, object]:
        return {
            "regions": self.regions,
            "provinces": self.provinces,
            "cities": self.cities,
            "repaired_city_references": self.repaired_city_references,
            "total": self.total,
        }


class ParentSynthesizer:
    """Creates placeholder ancestors for orphaned rows."""

    def __init__(self, db: Session):
        self.db = db

    # ──────────────────────────────────────────────
    # ENTRY POINTS
    # ──────────────────────────────────────────────

    def synthesize_all(self) -> SynthesisResult:
        """Fills every missing ancestor for provinces, cities and barangays."""
        return self._synthesize(barangays=True, cities=True, provinces=True)

    def synthesize_for_barangays(self) -> SynthesisResult:
        """Missing cities of barangays (plus whatever ancestors those need)."""
        return self._synthesize(barangays=True, cities=False, provinces=False)

    def synthesize_for_cities(self) -> SynthesisResult:
        """Missing provinces of non-independent cities (plus their regions)."""
        return self._synthesize(barangays=False, cities=True, provinces=False)

    def synthesize_for_provinces(self) -> SynthesisResult:
        """Missing regions of provinces."""
        return self._synthesize(barangays=False, cities=False, provinces=True)

    def synthesize_for_codes(self, level: str, codes: List[str]) -> SynthesisResult:
        """
        Creates the `level` rows for the given parent codes (and their
        missing ancestors). Codes that already exist are left alone.
        """
        result = SynthesisResult()
        city_codes, province_codes, region_codes = set(), set(), set()
        if level == "city":
            city_codes.update(codes)
        elif level == "province":
            province_codes.update(codes)
        elif level == "region":
            region_codes.update(codes)
        else:
            raise ValueError(f"Cannot synthesize level '{level}'")

        self._create(result, city_codes, province_codes, region_codes)
        self.db.commit()
        return result

    # ──────────────────────────────────────────────
    # PLANNING
    # ──────────────────────────────────────────────

    def _synthesize(self, barangays: bool, cities: bool, provinces: bool) -> SynthesisResult:
        result = SynthesisResult()

        city_codes = set()
        if barangays:
            existing_cities = psgc_store.all_codes(self.db, "city")
            referenced = set(self.db.scalars(select(Barangay.city_municipality_code).distinct()))
            city_codes = referenced - existing_cities

        province_codes = set()
        if cities:
            province_codes = self._missing_city_parents(result)

        region_codes = set()
        if provinces:
            existing_regions = psgc_store.all_codes(self.db, "region")
            referenced = set(self.db.scalars(select(Province.region_code).distinct()))
            region_codes = referenced - existing_regions

        self._create(result, city_codes, province_codes, region_codes)
        self.db.commit()

        logger.info(
            f"[Synthesizer] ✅ Created {len(result.regions)} regions, "
            f"{len(result.provinces)} provinces, {len(result.cities)} cities"
        )
        return result

    def _missing_city_parents(self, result: SynthesisResult) -> set:
        """
        Province codes referenced by non-independent cities but absent.

        Non-independent cities with no province reference get the code
        prefix written back so the synthesized province is reachable.
        """
        existing_provinces = psgc_store.all_codes(self.db, "province")

        unreferenced = self.db.query(CityMunicipality).filter(
            CityMunicipality.province_code.is_(None),
            CityMunicipality.is_independent.isnot(True)
        ).all()
        for city in unreferenced:
            city.province_code = prefix_for(city.code, "province")
            result.repaired_city_references.append(city.code)
        if unreferenced:
            self.db.flush()
            logger.info(f"[Synthesizer] Derived province reference for {len(unreferenced)} cities")

        referenced = set(self.db.scalars(
            select(CityMunicipality.province_code).where(
                CityMunicipality.province_code.isnot(None),
                CityMunicipality.is_independent.isnot(True)
            ).distinct()
        ))
        return referenced - existing_provinces

    # ──────────────────────────────────────────────
    # CREATION (top-down so labels can use real ancestor names)
    # ──────────────────────────────────────────────

    def _create(self, result: SynthesisResult, city_codes: set, province_codes: set, region_codes: set) -> None:
        existing_cities = psgc_store.existing_codes(self.db, "city", city_codes)
        city_codes = set(city_codes) - existing_cities

        province_codes = set(province_codes) | {prefix_for(code, "province") for code in city_codes}
        province_codes -= psgc_store.existing_codes(self.db, "province", province_codes)

        region_codes = set(region_codes) | {prefix_for(code, "region") for code in province_codes}
        region_codes -= psgc_store.existing_codes(self.db, "region", region_codes)

        if region_codes:
            rows = [
                {"code": code, "name": placeholder_name("region", code), "is_active": True}
                for code in sorted(region_codes)
            ]
            psgc_store.upsert_rows(self.db, "region", rows, update=False)
            result.regions.extend(row["code"] for row in rows)
            logger.info(f"[Synthesizer] 📊 Created {len(rows)} placeholder regions")

        if province_codes:
            region_names = self._authoritative_names(Region, "region", {prefix_for(c, "region") for c in province_codes})
            rows = [
                {
                    "code": code,
                    "name": placeholder_name("province", code, region_names.get(prefix_for(code, "region"))),
                    "region_code": prefix_for(code, "region"),
                    "is_active": True,
                }
                for code in sorted(province_codes)
            ]
            psgc_store.upsert_rows(self.db, "province", rows, update=False)
            result.provinces.extend(row["code"] for row in rows)
            logger.info(f"[Synthesizer] 📊 Created {len(rows)} placeholder provinces")

        if city_codes:
            province_names = self._authoritative_names(
                Province, "province", {prefix_for(c, "province") for c in city_codes}
            )
            rows = [
                {
                    "code": code,
                    "name": placeholder_name("city", code, province_names.get(prefix_for(code, "province"))),
                    "province_code": prefix_for(code, "province"),
                    "type": "Municipality",
                    "is_independent": False,
                    "is_active": True,
                }
                for code in sorted(city_codes)
            ]
            psgc_store.upsert_rows(self.db, "city", rows, update=False)
            result.cities.extend(row["code"] for row in rows)
            logger.info(f"[Synthesizer] 📊 Created {len(rows)} placeholder cities")

    def _authoritative_names(self, model, level: str, codes: set) -> Dict[str, str]:
        """Names of existing, non-placeholder rows among `codes`."""
        if not codes:
            return {}
        rows = self.db.execute(
            select(model.code, model.name).where(model.code.in_(sorted(codes)))
        ).all()
        return {
            row.code: row.name
            for row in rows
            if not is_placeholder_name(level, row.name)
        }
