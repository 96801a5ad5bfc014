"""
PSGC Integrity Auditor

Read-only scan of the four tables. For every parent/child relationship it
reports orphaned children, children whose declared parent is not their
code prefix, independent cities whose flag disagrees with their province
reference, and ancestors nothing points to.

Orphans are findings, never exceptions; fixing them is an explicit step
(see RemediationService).
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from georef.config.hierarchy import LEVELS, LEVEL_DEFINITIONS, expected_parent_code, prefix_for
from georef.core.exceptions import BackendUnavailableError
from georef.models.psgc import Region, Province, CityMunicipality, Barangay
from georef.services import psgc_store
from georef.services.parent_synthesizer import is_placeholder_name

logger = logging.getLogger(__name__)


SEVERITY_LEVELS = ("excellent", "good", "moderate", "needs_attention")


def classify_severity(total_issues: int) -> str:
    if total_issues == 0:
        return "excellent"
    if total_issues < 10:
        return "good"
    if total_issues < 100:
        return "moderate"
    return "needs_attention"


@dataclass
class RelationshipAudit:
    """Findings for one child → parent relationship."""
    child_level: str
    parent_level: str
    checked: int = 0
    orphaned: int = 0
    orphan_sample: List[Dict[str, Any]] = field(default_factory=list)
    missing_parent_codes: List[str] = field(default_factory=list)
    # Existing parent that is not the child's code prefix
    prefix_mismatches: int = 0
    prefix_mismatch_sample: List[Dict[str, Any]] = field(default_factory=list)
    # Independent-city flag disagreeing with the province column
    inconsistent_exemptions: int = 0
    inconsistent_sample: List[Dict[str, Any]] = field(default_factory=list)
    inconsistent_with_invalid_parent: int = 0
    unused_parents: int = 0
    unused_parent_sample: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def relationship(self) -> str:
        return f"{self.child_level}→{self.parent_level}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "relationship": self.relationship,
            "child_level": self.child_level,
            "parent_level": self.parent_level,
            "checked": self.checked,
            "orphaned": self.orphaned,
            "orphan_sample": self.orphan_sample,
            "missing_parent_codes": self.missing_parent_codes,
            "prefix_mismatches": self.prefix_mismatches,
            "prefix_mismatch_sample": self.prefix_mismatch_sample,
            "inconsistent_exemptions": self.inconsistent_exemptions,
            "inconsistent_sample": self.inconsistent_sample,
            "inconsistent_with_invalid_parent": self.inconsistent_with_invalid_parent,
            "unused_parents": self.unused_parents,
            "unused_parent_sample": self.unused_parent_sample,
        }


@dataclass
class AuditReport:
    counts: Dict[str, int]
    relationships: List[RelationshipAudit]
    unused_regions: int = 0
    unused_region_sample: List[Dict[str, Any]] = field(default_factory=list)
    placeholders: Dict[str, int] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def relationship(self, child_level: str) -> Optional[RelationshipAudit]:
        for item in self.relationships:
            if item.child_level == child_level:
                return item
        return None

    @property
    def issues(self) -> Dict[str, int]:
        province = self.relationship("province")
        city = self.relationship("city")
        barangay = self.relationship("barangay")
        return {
            "orphaned_provinces": province.orphaned if province else 0,
            "orphaned_cities": city.orphaned if city else 0,
            "independent_with_province": city.inconsistent_exemptions if city else 0,
            "independent_with_invalid_province": city.inconsistent_with_invalid_parent if city else 0,
            "orphaned_barangays": barangay.orphaned if barangay else 0,
            "prefix_mismatch_provinces": province.prefix_mismatches if province else 0,
            "prefix_mismatch_cities": city.prefix_mismatches if city else 0,
            "prefix_mismatch_barangays": barangay.prefix_mismatches if barangay else 0,
            "unused_regions": self.unused_regions,
            "unused_provinces": province.unused_parents if province else 0,
            "unused_cities": city.unused_parents if city else 0,
            "placeholder_rows": sum(self.placeholders.values()),
        }

    @property
    def total_issues(self) -> int:
        """Actionable issues; unused ancestors and placeholders are signals only."""
        issues = self.issues
        return (
            issues["orphaned_provinces"]
            + issues["orphaned_cities"]
            + issues["independent_with_province"]
            + issues["orphaned_barangays"]
            + issues["prefix_mismatch_provinces"]
            + issues["prefix_mismatch_cities"]
            + issues["prefix_mismatch_barangays"]
        )

    @property
    def total_orphans(self) -> int:
        return sum(r.orphaned for r in self.relationships)

    @property
    def severity(self) -> str:
        return classify_severity(self.total_issues)

    @property
    def suggested_actions(self) -> List[Dict[str, Any]]:
        issues = self.issues
        actions = []

        if issues["independent_with_province"]:
            actions.append({
                "action": "nullify-independent",
                "affected": issues["independent_with_province"],
                "description": "Set province_code to NULL for cities flagged independent",
            })

        orphaned = issues["orphaned_provinces"] + issues["orphaned_cities"] + issues["orphaned_barangays"]
        if orphaned:
            actions.append({
                "action": "synthesize",
                "affected": orphaned,
                "description": "Synthesize placeholder parents from code prefixes (or fix the parent codes)",
            })
            for level, key in (("province", "orphaned_provinces"), ("city", "orphaned_cities"),
                               ("barangay", "orphaned_barangays")):
                if issues[key]:
                    actions.append({
                        "action": "delete-orphans",
                        "level": level,
                        "affected": issues[key],
                        "description": f"Alternatively delete orphaned {LEVEL_DEFINITIONS[level]['label']} rows",
                    })

        for level, key in (("province", "prefix_mismatch_provinces"), ("city", "prefix_mismatch_cities"),
                           ("barangay", "prefix_mismatch_barangays")):
            if issues[key]:
                actions.append({
                    "action": "realign-parents",
                    "level": level,
                    "affected": issues[key],
                    "description": f"Rewrite the parent code of {LEVEL_DEFINITIONS[level]['label']} rows "
                                   f"from their code prefix",
                })

        unused = issues["unused_regions"] + issues["unused_provinces"] + issues["unused_cities"]
        if unused:
            actions.append({
                "action": "review-unused",
                "affected": unused,
                "description": "Review ancestors without children (candidates for deletion)",
            })

        if issues["placeholder_rows"]:
            actions.append({
                "action": "delete-placeholders",
                "affected": issues["placeholder_rows"],
                "description": "Re-import authoritative data over synthesized rows, "
                               "then delete placeholders left without children",
            })

        return actions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "counts": self.counts,
            "total_records": sum(self.counts.values()),
            "issues": self.issues,
            "total_issues": self.total_issues,
            "severity": self.severity,
            "relationships": [r.to_dict() for r in self.relationships],
            "unused_region_sample": self.unused_region_sample,
            "placeholders": self.placeholders,
            "suggested_actions": self.suggested_actions,
        }


class IntegrityAuditor:
    """Scans the PSGC tables and builds an AuditReport. Never writes."""

    def __init__(self, db: Session, sample_size: int = 5):
        self.db = db
        self.sample_size = sample_size

    def audit(self) -> AuditReport:
        try:
            return self._audit()
        except SQLAlchemyError as e:
            raise BackendUnavailableError("integrity audit", e) from e

    def _audit(self) -> AuditReport:
        logger.info("[Audit] 🔍 PSGC hierarchy integrity audit")

        counts = {
            LEVEL_DEFINITIONS[level]["table"]: psgc_store.count_rows(self.db, level)
            for level in LEVELS
        }
        for table, count in counts.items():
            logger.info(f"[Audit] {table}: {count} records")

        regions = self.db.execute(select(Region.code, Region.name)).all()
        provinces = self.db.execute(
            select(Province.code, Province.name, Province.region_code)
        ).all()
        cities = self.db.execute(
            select(
                CityMunicipality.code,
                CityMunicipality.name,
                CityMunicipality.province_code,
                CityMunicipality.is_independent,
                CityMunicipality.type
            )
        ).all()
        barangays = self.db.execute(
            select(Barangay.code, Barangay.name, Barangay.city_municipality_code)
        ).all()

        region_codes = {r.code for r in regions}
        province_codes = {p.code for p in provinces}
        city_codes = {c.code for c in cities}

        province_audit = self._audit_provinces(provinces, region_codes, cities)
        city_audit = self._audit_cities(cities, province_codes, barangays)
        barangay_audit = self._audit_barangays(barangays, city_codes)

        # A region is used by a province or by an independent city under its prefix
        used_regions = {p.region_code for p in provinces}
        used_regions.update(prefix_for(c.code, "region") for c in cities if c.is_independent)
        unused_regions = sorted((r for r in regions if r.code not in used_regions), key=lambda r: r.code)

        placeholders = {
            "region": sum(1 for r in regions if is_placeholder_name("region", r.name)),
            "province": sum(1 for p in provinces if is_placeholder_name("province", p.name)),
            "city": sum(1 for c in cities if is_placeholder_name("city", c.name)),
        }

        report = AuditReport(
            counts=counts,
            relationships=[province_audit, city_audit, barangay_audit],
            unused_regions=len(unused_regions),
            unused_region_sample=[
                {"code": r.code, "name": r.name} for r in unused_regions[:self.sample_size]
            ],
            placeholders=placeholders,
        )

        logger.info(
            f"[Audit] 🎯 {report.total_issues} issues, severity={report.severity}"
        )
        return report

    # ──────────────────────────────────────────────
    # RELATIONSHIPS
    # ──────────────────────────────────────────────

    def _audit_provinces(self, provinces, region_codes: Set[str], cities) -> RelationshipAudit:
        audit = RelationshipAudit(child_level="province", parent_level="region", checked=len(provinces))

        orphans = sorted((p for p in provinces if p.region_code not in region_codes), key=lambda p: p.code)
        audit.orphaned = len(orphans)
        audit.orphan_sample = [
            {"code": p.code, "name": p.name, "region_code": p.region_code}
            for p in orphans[:self.sample_size]
        ]
        audit.missing_parent_codes = sorted({p.region_code for p in orphans if p.region_code})
        self._check_prefixes(audit, provinces, "region_code", region_codes)

        # Provinces no non-independent city refers to
        referenced = {c.province_code for c in cities if c.province_code and not c.is_independent}
        unused = sorted((p for p in provinces if p.code not in referenced), key=lambda p: p.code)
        audit.unused_parents = len(unused)
        audit.unused_parent_sample = [
            {"code": p.code, "name": p.name} for p in unused[:self.sample_size]
        ]

        if audit.orphaned:
            logger.warning(f"[Audit] ❌ Orphaned provinces: {audit.orphaned}")
        return audit

    def _audit_cities(self, cities, province_codes: Set[str], barangays) -> RelationshipAudit:
        audit = RelationshipAudit(child_level="city", parent_level="province", checked=len(cities))

        orphans = sorted(
            (c for c in cities if not c.is_independent and c.province_code not in province_codes),
            key=lambda c: c.code
        )
        audit.orphaned = len(orphans)
        audit.orphan_sample = [
            {"code": c.code, "name": c.name, "province_code": c.province_code}
            for c in orphans[:self.sample_size]
        ]
        audit.missing_parent_codes = sorted({
            c.province_code or prefix_for(c.code, "province") for c in orphans
        })
        self._check_prefixes(
            audit, [c for c in cities if not c.is_independent], "province_code", province_codes
        )

        inconsistent = sorted(
            (c for c in cities if c.is_independent and c.province_code is not None),
            key=lambda c: c.code
        )
        audit.inconsistent_exemptions = len(inconsistent)
        audit.inconsistent_sample = [
            {"code": c.code, "name": c.name, "province_code": c.province_code, "type": c.type}
            for c in inconsistent[:self.sample_size]
        ]
        audit.inconsistent_with_invalid_parent = sum(
            1 for c in inconsistent if c.province_code not in province_codes
        )

        referenced = {b.city_municipality_code for b in barangays}
        unused = sorted((c for c in cities if c.code not in referenced), key=lambda c: c.code)
        audit.unused_parents = len(unused)
        audit.unused_parent_sample = [
            {"code": c.code, "name": c.name} for c in unused[:self.sample_size]
        ]

        if audit.orphaned:
            logger.warning(f"[Audit] ❌ Orphaned non-independent cities: {audit.orphaned}")
        if audit.inconsistent_exemptions:
            logger.warning(
                f"[Audit] ⚠️ Independent cities with province codes: {audit.inconsistent_exemptions}"
            )
        return audit

    def _audit_barangays(self, barangays, city_codes: Set[str]) -> RelationshipAudit:
        audit = RelationshipAudit(child_level="barangay", parent_level="city", checked=len(barangays))

        orphans = sorted(
            (b for b in barangays if b.city_municipality_code not in city_codes),
            key=lambda b: b.code
        )
        audit.orphaned = len(orphans)
        audit.orphan_sample = [
            {"code": b.code, "name": b.name, "city_municipality_code": b.city_municipality_code}
            for b in orphans[:self.sample_size]
        ]
        audit.missing_parent_codes = sorted({b.city_municipality_code for b in orphans})
        self._check_prefixes(audit, barangays, "city_municipality_code", city_codes)

        if audit.orphaned:
            logger.warning(f"[Audit] ❌ Orphaned barangays: {audit.orphaned}")
        return audit

    def _check_prefixes(self, audit: RelationshipAudit, rows, parent_field: str, parent_codes: Set[str]) -> None:
        """Children pointing at an existing parent other than their code prefix."""
        mismatched = []
        for row in rows:
            declared = getattr(row, parent_field)
            if declared not in parent_codes:
                continue
            expected = expected_parent_code(audit.child_level, row.code)
            if declared != expected:
                mismatched.append((row, declared, expected))

        mismatched.sort(key=lambda item: item[0].code)
        audit.prefix_mismatches = len(mismatched)
        audit.prefix_mismatch_sample = [
            {"code": row.code, "name": row.name, parent_field: declared, "expected_prefix": expected}
            for row, declared, expected in mismatched[:self.sample_size]
        ]

        if audit.prefix_mismatches:
            logger.warning(
                f"[Audit] ❌ {audit.child_level} rows outside their parent's prefix: {audit.prefix_mismatches}"
            )
