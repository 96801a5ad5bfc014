"""
Hierarchy Resolver

Turns one PSGC code into its full ancestor chain:

    "0421140001" → Barangay → City 042114 → Province 0421 → Region 04
    full_address = "Barangay, City, Province, Region"

The level comes from the code length alone. Any missing link raises
AncestorNotFoundError instead of being silently skipped; independent
cities have no province segment by definition.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from georef.config.hierarchy import LEVELS, LEVEL_DEFINITIONS, level_for_code, prefix_for
from georef.core.exceptions import AncestorNotFoundError, BackendUnavailableError, CodeNotFoundError
from georef.models.psgc import Region, Province, CityMunicipality, Barangay

logger = logging.getLogger(__name__)


def join_address(*names: Optional[str]) -> str:
    """Comma-joins the present names, leaf first."""
    return ", ".join(name for name in names if name)


class HierarchyResolver:

    def __init__(self, db: Session):
        self.db = db

    # ──────────────────────────────────────────────
    # RESOLVE
    # ──────────────────────────────────────────────

    def resolve(self, code: str) -> Dict:
        """
        Resolves `code` to its ancestor chain.

        Returns:
            {
                'code', 'name', 'level',
                '<level>_code', '<level>_name' for every level in the chain,
                'city_type', 'is_independent' (city and barangay),
                'chain': [{'level', 'code', 'name'}, ...] root first,
                'full_address': str
            }

        Raises:
            InvalidCodeError: length maps to no level
            CodeNotFoundError: the code itself is absent
            AncestorNotFoundError: a link of the chain is absent
            BackendUnavailableError: the store failed
        """
        level = level_for_code(code)
        code = code.strip()

        try:
            return self._resolve(level, code)
        except SQLAlchemyError as e:
            raise BackendUnavailableError(f"lookup of {code}", e) from e

    def _resolve(self, level: str, code: str) -> Dict:
        barangay = city = province = region = None
        skip_province = False

        if level == "barangay":
            barangay = self._get(Barangay, "barangay", code)
            city = self._get_parent(
                CityMunicipality, "city", barangay.city_municipality_code, "barangay", barangay.code
            )
        elif level == "city":
            city = self._get(CityMunicipality, "city", code)

        if city is not None:
            if city.is_independent:
                skip_province = True
                region = self._get_parent(Region, "region", prefix_for(city.code, "region"), "city", city.code)
            else:
                # A null reference on a non-independent city is a missing link
                province = self._get_parent(Province, "province", city.province_code, "city", city.code)
        elif level == "province":
            province = self._get(Province, "province", code)

        if province is not None:
            region = self._get_parent(Region, "region", province.region_code, "province", province.code)
        elif level == "region":
            region = self._get(Region, "region", code)

        rows = {"region": region, "province": province, "city": city, "barangay": barangay}
        target = rows[level]

        result = {
            "code": target.code,
            "name": target.name,
            "level": level,
        }

        depth = LEVEL_DEFINITIONS[level]["depth"]
        chain = []
        for chain_level in LEVELS[:depth]:
            row = rows[chain_level]
            result[f"{chain_level}_code"] = row.code if row else None
            result[f"{chain_level}_name"] = row.name if row else None
            if chain_level == "province" and skip_province:
                chain.append({"level": "province", "code": None, "name": None})
            else:
                chain.append({"level": chain_level, "code": row.code, "name": row.name})

        if city is not None:
            result["city_type"] = city.type
            result["is_independent"] = bool(city.is_independent)

        result["chain"] = chain
        result["full_address"] = join_address(*(link["name"] for link in reversed(chain)))

        logger.debug(f"[Resolver] {code} → {result['full_address']}")
        return result

    def _get(self, model, level: str, code: str):
        row = self.db.get(model, code)
        if row is None:
            raise CodeNotFoundError(level, code)
        return row

    def _get_parent(self, model, level: str, code: str, child_level: str, child_code: str):
        row = self.db.get(model, code) if code else None
        if row is None:
            logger.warning(f"[Resolver] ❌ {child_level} {child_code} → missing {level} {code}")
            raise AncestorNotFoundError(level, code, child_level, child_code)
        return row

    # ──────────────────────────────────────────────
    # LABELS FOR STORED ADDRESSES
    # ──────────────────────────────────────────────

    def lookup_address(
        self,
        region_code: str = None,
        province_code: str = None,
        city_code: str = None,
        barangay_code: str = None
    ) -> Dict[str, Optional[str]]:
        """
        Names for a set of stored address codes. Unknown codes yield None
        instead of raising; this feeds display of existing records.
        """
        try:
            labels = {
                "region": self._name(Region, region_code),
                "province": self._name(Province, province_code),
                "city": self._name(CityMunicipality, city_code),
                "barangay": self._name(Barangay, barangay_code),
            }
        except SQLAlchemyError as e:
            raise BackendUnavailableError("address lookup", e) from e

        labels["full_address"] = join_address(
            labels["barangay"], labels["city"], labels["province"], labels["region"]
        )
        return labels

    def _name(self, model, code: Optional[str]) -> Optional[str]:
        if not code:
            return None
        row = self.db.get(model, code.strip())
        return row.name if row else None

    # ──────────────────────────────────────────────
    # BROWSE (cascading selectors)
    # ──────────────────────────────────────────────

    def _all(self, query, operation: str) -> List:
        try:
            return query.all()
        except SQLAlchemyError as e:
            raise BackendUnavailableError(operation, e) from e

    def list_regions(self) -> List[Region]:
        query = self.db.query(Region).filter(Region.is_active.isnot(False))
        return self._all(query.order_by(Region.name), "region listing")

    def list_provinces(self, region_code: str = None) -> List[Province]:
        query = self.db.query(Province).filter(Province.is_active.isnot(False))
        if region_code:
            query = query.filter(Province.region_code == region_code)
        return self._all(query.order_by(Province.name), "province listing")

    def list_cities(self, province_code: str = None) -> List[CityMunicipality]:
        query = self.db.query(CityMunicipality).filter(CityMunicipality.is_active.isnot(False))
        if province_code:
            query = query.filter(CityMunicipality.province_code == province_code)
        return self._all(query.order_by(CityMunicipality.name), "city listing")

    def list_independent_cities(self, region_code: str) -> List[CityMunicipality]:
        """Independent cities sit directly under their region (code prefix)."""
        query = self.db.query(CityMunicipality).filter(
            CityMunicipality.is_active.isnot(False),
            CityMunicipality.is_independent.is_(True),
            CityMunicipality.code.like(f"{region_code}%")
        )
        return self._all(query.order_by(CityMunicipality.name), "independent city listing")

    def list_barangays(self, city_code: str = None) -> List[Barangay]:
        query = self.db.query(Barangay).filter(Barangay.is_active.isnot(False))
        if city_code:
            query = query.filter(Barangay.city_municipality_code == city_code)
        return self._all(query.order_by(Barangay.name), "barangay listing")
