"""
Explicit fixes for findings of the integrity audit.

Nothing here runs automatically: each action is invoked by an operator
(CLI) after reading the audit report.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from georef.config.hierarchy import LEVEL_DEFINITIONS, expected_parent_code, prefix_for
from georef.core.exceptions import BackendUnavailableError
from georef.models.psgc import Region, Province, CityMunicipality, Barangay
from georef.services import psgc_store
from georef.services.parent_synthesizer import ParentSynthesizer, is_placeholder_name
from georef.services.psgc_normalizer import normalize_rows

logger = logging.getLogger(__name__)


@dataclass
class RemediationResult:
    action: str
    affected: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "affected": self.affected, "details": self.details}


class RemediationService:

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise BackendUnavailableError(action, e) from e

    # ──────────────────────────────────────────────
    # ACTIONS
    # ──────────────────────────────────────────────

    def nullify_independent_provinces(self) -> RemediationResult:
        """Independent cities must not carry a province reference."""
        cities = self.db.query(CityMunicipality).filter(
            CityMunicipality.is_independent.is_(True),
            CityMunicipality.province_code.isnot(None)
        ).all()
        for city in cities:
            logger.info(f"[Remediation] {city.code} - {city.name}: province {city.province_code} → NULL")
            city.province_code = None
        self._commit("nullify-independent")
        return RemediationResult("nullify-independent", len(cities), {"codes": [c.code for c in cities]})

    def synthesize_missing_parents(self) -> RemediationResult:
        synthesis = ParentSynthesizer(self.db).synthesize_all()
        return RemediationResult("synthesize", synthesis.total, synthesis.to_dict())

    def delete_orphans(self, level: str) -> RemediationResult:
        """Deletes rows of `level` whose declared parent does not exist."""
        if level == "province":
            parents = psgc_store.all_codes(self.db, "region")
            orphans = [
                p.code for p in self.db.query(Province.code, Province.region_code)
                if p.region_code not in parents
            ]
        elif level == "city":
            parents = psgc_store.all_codes(self.db, "province")
            orphans = [
                c.code for c in self.db.query(
                    CityMunicipality.code, CityMunicipality.province_code, CityMunicipality.is_independent
                )
                if not c.is_independent and c.province_code not in parents
            ]
        elif level == "barangay":
            parents = psgc_store.all_codes(self.db, "city")
            orphans = [
                b.code for b in self.db.query(Barangay.code, Barangay.city_municipality_code)
                if b.city_municipality_code not in parents
            ]
        else:
            raise ValueError(f"Level '{level}' has no parent to be orphaned from")

        deleted = psgc_store.delete_codes(self.db, level, orphans)
        self._commit("delete-orphans")
        logger.info(f"[Remediation] 🗑️ Deleted {deleted} orphaned {level} rows")
        return RemediationResult("delete-orphans", deleted, {"level": level, "codes": sorted(orphans)})

    def realign_parents(self, level: str) -> RemediationResult:
        """
        Rewrites the parent column of `level` rows to their code prefix.
        Independent cities and null references are left alone; a parent
        that does not exist afterwards shows up as an orphan.
        """
        models = {"province": Province, "city": CityMunicipality, "barangay": Barangay}
        if level not in models:
            raise ValueError(f"Level '{level}' has no parent reference")

        parent_field = LEVEL_DEFINITIONS[level]["parent_field"]
        query = self.db.query(models[level]).filter(getattr(models[level], parent_field).isnot(None))
        if level == "city":
            query = query.filter(CityMunicipality.is_independent.isnot(True))

        changes = {}
        for row in query:
            expected = expected_parent_code(level, row.code)
            declared = getattr(row, parent_field)
            if declared != expected:
                logger.info(f"[Remediation] {level} {row.code} - {row.name}: {declared} → {expected}")
                setattr(row, parent_field, expected)
                changes[row.code] = {"from": declared, "to": expected}

        self._commit("realign-parents")
        logger.info(f"[Remediation] ✅ Realigned {len(changes)} {level} rows")
        return RemediationResult(
            "realign-parents", len(changes), {"level": level, "changes": dict(sorted(changes.items()))}
        )

    def delete_unused_placeholders(self) -> RemediationResult:
        """
        Deletes synthesized rows that no longer have children, bottom-up
        (a city removed here can leave its placeholder province unused).
        """
        deleted: Dict[str, List[str]] = {}

        used_cities = set(self.db.scalars(select(Barangay.city_municipality_code).distinct()))
        deleted["city"] = self._delete_placeholders(CityMunicipality, "city", used_cities)

        used_provinces = set(self.db.scalars(
            select(CityMunicipality.province_code).where(CityMunicipality.province_code.isnot(None)).distinct()
        ))
        deleted["province"] = self._delete_placeholders(Province, "province", used_provinces)

        deleted["region"] = self._delete_placeholders(Region, "region", self._used_regions())

        self._commit("delete-placeholders")
        total = sum(len(codes) for codes in deleted.values())
        logger.info(f"[Remediation] 🗑️ Deleted {total} unused placeholder rows")
        return RemediationResult("delete-placeholders", total, deleted)

    def reconcile_provinces(self, reference_rows: List[Dict[str, Any]]) -> RemediationResult:
        """
        Aligns provinces with an authoritative province list:
          1. fix region_code of provinces present in the reference
          2. delete placeholder provinces absent from the reference
             (only when no city still points to them)
          3. delete regions nothing uses any more
        """
        official = {row["code"]: row for row in normalize_rows("province", reference_rows).rows}
        logger.info(f"[Remediation] Loaded {len(official)} official provinces from reference")

        fixed = []
        for province in self.db.query(Province).all():
            reference = official.get(province.code)
            if reference and province.region_code != reference["region_code"]:
                logger.info(
                    f"[Remediation] ✅ {province.code} ({province.name}): "
                    f"{province.region_code} → {reference['region_code']}"
                )
                province.region_code = reference["region_code"]
                fixed.append(province.code)
        self.db.flush()

        used_provinces = set(self.db.scalars(
            select(CityMunicipality.province_code).where(CityMunicipality.province_code.isnot(None)).distinct()
        ))
        generated = [
            p.code for p in self.db.query(Province.code, Province.name)
            if p.code not in official
            and is_placeholder_name("province", p.name)
            and p.code not in used_provinces
        ]
        psgc_store.delete_codes(self.db, "province", generated)
        self.db.flush()

        used_regions = self._used_regions()
        unused_regions = [r for r in psgc_store.all_codes(self.db, "region") if r not in used_regions]
        psgc_store.delete_codes(self.db, "region", unused_regions)

        self._commit("reconcile-provinces")
        details = {
            "fixed_provinces": sorted(fixed),
            "deleted_provinces": sorted(generated),
            "deleted_regions": sorted(unused_regions),
        }
        return RemediationResult(
            "reconcile-provinces",
            len(fixed) + len(generated) + len(unused_regions),
            details
        )

    # ──────────────────────────────────────────────
    # HELPERS
    # ──────────────────────────────────────────────

    def _used_regions(self) -> set:
        used = set(self.db.scalars(select(Province.region_code).distinct()))
        independent = self.db.scalars(
            select(CityMunicipality.code).where(CityMunicipality.is_independent.is_(True))
        )
        used.update(prefix_for(code, "region") for code in independent)
        return used

    def _delete_placeholders(self, model, level: str, used: set) -> List[str]:
        codes = [
            row.code for row in self.db.query(model.code, model.name)
            if is_placeholder_name(level, row.name) and row.code not in used
        ]
        psgc_store.delete_codes(self.db, level, codes)
        self.db.flush()
        return sorted(codes)


ACTIONS = (
    "nullify-independent",
    "synthesize",
    "delete-orphans",
    "realign-parents",
    "delete-placeholders",
    "reconcile-provinces",
)
