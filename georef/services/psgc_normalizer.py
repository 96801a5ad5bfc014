"""
Normalizes raw PSGC source rows into the canonical row shape of each level.

Rules:
  - values are trimmed; empty strings become None
  - booleans accept "true"/"True"/"1"/"yes"/"t" forms
  - over-length codes are truncated to the level width
    (region 2, province 4, city 6; barangays keep 9-10 digits)
  - missing parent codes are derived from the child code prefix,
    except for independent cities, which never carry a province
  - duplicate codes inside one source: last occurrence wins
  - a declared parent that is not the code prefix is kept but logged
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from georef.config.hierarchy import LEVEL_DEFINITIONS, code_width, expected_parent_code, prefix_for
from georef.core.exceptions import SourceParseError
from georef.schemas.psgc import RegionRow, ProvinceRow, CityRow, BarangayRow

logger = logging.getLogger(__name__)


TRUE_VALUES = {"true", "1", "yes", "y", "t"}
FALSE_VALUES = {"false", "0", "no", "n", "f"}


@dataclass
class NormalizedLevel:
    level: str
    rows: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[SourceParseError] = field(default_factory=list)
    duplicates: int = 0
    # Declared parent differs from the code prefix; kept, reported by the audit
    prefix_mismatches: List[str] = field(default_factory=list)


def clean_value(value: Any) -> Optional[Any]:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def parse_bool(value: Any, default: bool = False) -> bool:
    """Coerces booleans stored as text in CSV exports."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return default


def truncate_code(code: Optional[str], level: str) -> Optional[str]:
    """Cuts an over-length code down to the fixed width of `level`."""
    if code is None:
        return None
    code = str(code).strip()
    width = code_width(level)
    if level == "barangay":
        return code
    if len(code) > width:
        return code[:width]
    return code


def _first(row: Dict[str, Any], *keys: str) -> Optional[Any]:
    for key in keys:
        value = clean_value(row.get(key))
        if value is not None:
            return value
    return None


def _is_active(row: Dict[str, Any]) -> bool:
    return parse_bool(clean_value(row.get("is_active")), default=True)


# ──────────────────────────────────────────────
# PER-LEVEL TRANSFORMS
# ──────────────────────────────────────────────

def normalize_region(row: Dict[str, Any]) -> Dict[str, Any]:
    return RegionRow(
        code=truncate_code(_first(row, "code", "region_code"), "region"),
        name=_first(row, "name", "region_name"),
        is_active=_is_active(row)
    ).model_dump()


def normalize_province(row: Dict[str, Any]) -> Dict[str, Any]:
    code = truncate_code(_first(row, "code", "province_code"), "province")
    region_code = truncate_code(_first(row, "region_code"), "region")
    if region_code is None and code:
        region_code = prefix_for(code, "region")

    return ProvinceRow(
        code=code,
        name=_first(row, "name", "province_name"),
        region_code=region_code,
        is_active=_is_active(row)
    ).model_dump()


def _city_type(row: Dict[str, Any], is_independent: bool) -> str:
    raw_type = _first(row, "type", "city_type")
    if raw_type:
        lowered = raw_type.lower()
        if lowered.startswith("mun"):
            return "Municipality"
        if "city" in lowered or lowered in ("huc", "icc", "cc"):
            return "City"
        return raw_type

    is_city = clean_value(row.get("is_city"))
    if is_city is not None:
        return "City" if parse_bool(is_city) else "Municipality"

    # Independent components are always cities
    return "City" if is_independent else "Municipality"


def normalize_city(row: Dict[str, Any]) -> Dict[str, Any]:
    code = truncate_code(_first(row, "code", "city_municipality_code", "city_code"), "city")
    is_independent = parse_bool(clean_value(row.get("is_independent")))

    if is_independent:
        province_code = None
    else:
        province_code = truncate_code(_first(row, "province_code"), "province")
        if province_code is None and code and len(code) >= 4:
            province_code = prefix_for(code, "province")
            logger.debug(f"[Normalizer] Derived province {province_code} for city {code}")

    return CityRow(
        code=code,
        name=_first(row, "name", "city_municipality_name", "city_name"),
        province_code=province_code,
        type=_city_type(row, is_independent),
        is_independent=is_independent,
        is_active=_is_active(row)
    ).model_dump()


def normalize_barangay(row: Dict[str, Any]) -> Dict[str, Any]:
    code = truncate_code(_first(row, "code", "barangay_code"), "barangay")
    city_code = truncate_code(_first(row, "city_municipality_code", "city_code"), "city")
    if city_code is None and code and len(code) >= 6:
        city_code = prefix_for(code, "city")

    return BarangayRow(
        code=code,
        name=_first(row, "name", "barangay_name"),
        city_municipality_code=city_code,
        urban_rural_status=_first(row, "urban_rural_status"),
        is_active=_is_active(row)
    ).model_dump()


NORMALIZERS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "region": normalize_region,
    "province": normalize_province,
    "city": normalize_city,
    "barangay": normalize_barangay,
}


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "row"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


def normalize_rows(level: str, raw_rows: List[Dict[str, Any]]) -> NormalizedLevel:
    """
    Normalizes every raw row of one level.

    Malformed rows are collected as SourceParseError (with their 1-based
    data row number); the caller decides whether they are fatal.
    """
    transform = NORMALIZERS[level]
    result = NormalizedLevel(level=level)
    by_code: Dict[str, Dict[str, Any]] = {}

    for index, raw in enumerate(raw_rows, start=1):
        try:
            row = transform(raw)
        except ValidationError as e:
            result.errors.append(SourceParseError(level, index, dict(raw), _describe(e)))
            continue

        if row["code"] in by_code:
            result.duplicates += 1
        by_code[row["code"]] = row

    result.rows = list(by_code.values())

    parent_field = LEVEL_DEFINITIONS[level]["parent_field"]
    if parent_field:
        result.prefix_mismatches = sorted(
            row["code"] for row in result.rows
            if row[parent_field] is not None
            and row[parent_field] != expected_parent_code(level, row["code"])
        )
    if result.prefix_mismatches:
        logger.warning(
            f"[Normalizer] ⚠️ {len(result.prefix_mismatches)} {level} rows declare a parent "
            f"outside their code prefix: {result.prefix_mismatches[:5]}"
        )
    return result
