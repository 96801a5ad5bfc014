"""
Fuzzy Search Engine

Free text → ranked, deduplicated, paginated matches across the hierarchy.

    "qc"             → %qc%, qc%, %qc, %quezon city%, %quezoncity%, ...
    "city of manila" → %city of manila%, %manila%, %manila city%, ...

For every requested level one query runs per variation, plus hierarchical
queries matching the variation against an ancestor's name (a province
name surfaces its cities and barangays). Each query returns the row
joined with its ancestors, so no follow-up lookups are needed per hit.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from georef.config.abbreviations import ABBREVIATIONS, LOCALITY_KEYWORDS
from georef.config.hierarchy import LEVELS, LEVEL_ORDER
from georef.core.exceptions import BackendUnavailableError
from georef.models.psgc import Region, Province, CityMunicipality, Barangay
from georef.services.hierarchy_resolver import join_address

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"


# ──────────────────────────────────────────────
# VARIATIONS
# ──────────────────────────────────────────────

def normalize_query(query: Optional[str]) -> str:
    """Lowercase, trimmed, single-spaced."""
    return " ".join((query or "").lower().split())


def escape_like(value: str) -> str:
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def expand_abbreviations(query: str) -> List[str]:
    """
    Canonical forms for the whole-word abbreviations in `query`.

    Single-word query → the expansions themselves.
    Multi-word query → the query with the word substituted, plus the
    bare expansions.
    """
    words = normalize_query(query).split()
    expansions = []
    for index, word in enumerate(words):
        for expansion in ABBREVIATIONS.get(word, ()):
            if len(words) > 1:
                expansions.append(" ".join(words[:index] + [expansion] + words[index + 1:]))
            expansions.append(expansion)
    return expansions


def locality_forms(query: str) -> List[str]:
    """"city of X" ↔ "X" ↔ "X city" (same for municipality)."""
    forms = []
    for keyword in LOCALITY_KEYWORDS:
        prefix = f"{keyword} of "
        suffix = f" {keyword}"
        if query.startswith(prefix):
            base = query[len(prefix):]
            forms.extend([base, f"{base}{suffix}"])
        elif query.endswith(suffix):
            base = query[:-len(suffix)]
            forms.extend([base, f"{prefix}{base}"])
        else:
            forms.extend([f"{prefix}{query}", f"{query}{suffix}"])
    return [form for form in forms if form.strip()]


def build_variations(query: str, max_variations: int = 24) -> List[str]:
    """
    LIKE patterns for `query`, most specific first.

    Duplicates are dropped keeping the first occurrence, patterns of two
    characters or fewer are discarded and the list is capped at
    `max_variations`.
    """
    q = normalize_query(query)
    if not q:
        return []

    escaped = escape_like(q)
    patterns = [f"%{escaped}%", f"{escaped}%", f"%{escaped}"]

    words = q.split()
    if len(words) > 1:
        patterns.extend(f"%{escape_like(word)}%" for word in words if len(word) >= 2)
        patterns.append(f"%{escape_like(' '.join(reversed(words)))}%")

    for expansion in expand_abbreviations(q):
        patterns.append(f"%{escape_like(expansion)}%")
        compact = expansion.replace(" ", "")
        if compact != expansion:
            patterns.append(f"%{escape_like(compact)}%")

    patterns.extend(f"%{escape_like(form)}%" for form in locality_forms(q))

    unique = []
    for pattern in patterns:
        if len(pattern) > 2 and pattern not in unique:
            unique.append(pattern)
    return unique[:max_variations]


def parse_levels(raw: Optional[str]) -> List[str]:
    """
    "city,barangay" → ['city', 'barangay']; "all" → every level.

    Unknown names are ignored; empty input or nothing valid searches cities.
    """
    if raw is None or not raw.strip():
        return ["city"]
    if raw.strip().lower() == "all":
        return list(LEVELS)

    levels = []
    for part in raw.split(","):
        level = part.strip().lower()
        if level in LEVELS and level not in levels:
            levels.append(level)
    return levels or ["city"]


# ──────────────────────────────────────────────
# ROW → MATCH
# ──────────────────────────────────────────────

def _match(level: str, region=None, province=None, city=None, barangay=None) -> Dict:
    target = {"region": region, "province": province, "city": city, "barangay": barangay}[level]
    match = {
        "code": target.code,
        "name": target.name,
        "level": level,
        "type": city.type if level == "city" else None,
        "region_code": region.code if region else None,
        "region_name": region.name if region else None,
        "province_code": province.code if province else None,
        "province_name": province.name if province else None,
        "city_code": city.code if city else None,
        "city_name": city.name if city else None,
        "city_type": city.type if city else None,
        "is_independent": bool(city.is_independent) if city else None,
        "barangay_code": barangay.code if barangay else None,
        "barangay_name": barangay.name if barangay else None,
    }
    match["full_address"] = join_address(
        match["barangay_name"], match["city_name"], match["province_name"], match["region_name"]
    )
    return match


def _name_like(column, pattern: str):
    return func.lower(column).like(pattern, escape=LIKE_ESCAPE)


# ──────────────────────────────────────────────
# QUERIES (one per level × variation × match target)
# ──────────────────────────────────────────────

def query_regions(db: Session, pattern: str, cap: int) -> List[Dict]:
    stmt = select(Region).where(
        Region.is_active.isnot(False),
        _name_like(Region.name, pattern)
    ).order_by(Region.name).limit(cap)
    return [_match("region", region=r) for r in db.scalars(stmt)]


def query_provinces(db: Session, pattern: str, cap: int) -> List[Dict]:
    stmt = (
        select(Province, Region)
        .select_from(Province)
        .outerjoin(Region, Region.code == Province.region_code)
        .where(Province.is_active.isnot(False), _name_like(Province.name, pattern))
        .order_by(Province.name)
        .limit(cap)
    )
    return [_match("province", region=r, province=p) for p, r in db.execute(stmt)]


def _city_statement():
    region_code = func.coalesce(Province.region_code, func.substr(CityMunicipality.code, 1, 2))
    return (
        select(CityMunicipality, Province, Region)
        .select_from(CityMunicipality)
        .outerjoin(Province, Province.code == CityMunicipality.province_code)
        .outerjoin(Region, Region.code == region_code)
        .where(CityMunicipality.is_active.isnot(False))
    )


def query_cities(db: Session, pattern: str, cap: int) -> List[Dict]:
    stmt = _city_statement().where(
        _name_like(CityMunicipality.name, pattern)
    ).order_by(CityMunicipality.name).limit(cap)
    return [_match("city", region=r, province=p, city=c) for c, p, r in db.execute(stmt)]


def query_cities_by_province(db: Session, pattern: str, cap: int) -> List[Dict]:
    stmt = _city_statement().where(
        _name_like(Province.name, pattern)
    ).order_by(Province.name, CityMunicipality.name).limit(cap)
    return [_match("city", region=r, province=p, city=c) for c, p, r in db.execute(stmt)]


def _barangay_statement():
    region_code = func.coalesce(Province.region_code, func.substr(Barangay.code, 1, 2))
    return (
        select(Barangay, CityMunicipality, Province, Region)
        .select_from(Barangay)
        .outerjoin(CityMunicipality, CityMunicipality.code == Barangay.city_municipality_code)
        .outerjoin(Province, Province.code == CityMunicipality.province_code)
        .outerjoin(Region, Region.code == region_code)
        .where(Barangay.is_active.isnot(False))
    )


def _barangay_matches(db: Session, stmt) -> List[Dict]:
    return [
        _match("barangay", region=r, province=p, city=c, barangay=b)
        for b, c, p, r in db.execute(stmt)
    ]


def query_barangays(db: Session, pattern: str, cap: int) -> List[Dict]:
    stmt = _barangay_statement().where(
        _name_like(Barangay.name, pattern)
    ).order_by(Barangay.name).limit(cap)
    return _barangay_matches(db, stmt)


def query_barangays_by_city(db: Session, pattern: str, cap: int) -> List[Dict]:
    stmt = _barangay_statement().where(
        _name_like(CityMunicipality.name, pattern)
    ).order_by(CityMunicipality.name, Barangay.name).limit(cap)
    return _barangay_matches(db, stmt)


def query_barangays_by_province(db: Session, pattern: str, cap: int) -> List[Dict]:
    stmt = _barangay_statement().where(
        _name_like(Province.name, pattern)
    ).order_by(Province.name, CityMunicipality.name, Barangay.name).limit(cap)
    return _barangay_matches(db, stmt)


# level → [(query, cap key)], direct match first
LEVEL_QUERIES = {
    "region": [(query_regions, "region")],
    "province": [(query_provinces, "province")],
    "city": [
        (query_cities, "city"),
        (query_cities_by_province, "city_by_province"),
    ],
    "barangay": [
        (query_barangays, "barangay"),
        (query_barangays_by_city, "barangay_by_city"),
        (query_barangays_by_province, "barangay_by_province"),
    ],
}

DEFAULT_CAPS = {
    "region": 10,
    "province": 15,
    "city": 20,
    "city_by_province": 25,
    "barangay": 25,
    "barangay_by_city": 20,
    "barangay_by_province": 30,
}


# ──────────────────────────────────────────────
# RANKING
# ──────────────────────────────────────────────

def rank_key(anchors: Sequence[str]) -> Callable[[Dict], tuple]:
    """
    Sort key for matches of a query whose canonical forms are `anchors`
    (the raw query first, then its abbreviation expansions).

    starts-with first, exact before prefix, then grouped by province and
    city, higher levels first, alphabetical last.
    """
    anchors = [anchor.casefold() for anchor in anchors if anchor]

    def key(match: Dict) -> tuple:
        name = (match["name"] or "").casefold()
        starts = any(name.startswith(anchor) for anchor in anchors)
        exact = name in anchors
        return (
            0 if starts else 1,
            0 if exact else 1,
            (match.get("province_name") or "").casefold(),
            (match.get("city_name") or "").casefold(),
            LEVEL_ORDER[match["level"]],
            name,
        )

    return key


def dedupe(matches: Iterable[Dict]) -> List[Dict]:
    """First occurrence of each code wins."""
    seen = set()
    unique = []
    for match in matches:
        if match["code"] in seen:
            continue
        seen.add(match["code"])
        unique.append(match)
    return unique


# ──────────────────────────────────────────────
# ENGINE
# ──────────────────────────────────────────────

class FuzzySearchEngine:
    """
    Runs the fan-out on a bounded thread pool; every query gets its own
    short-lived session from `session_factory`.
    """

    def __init__(
        self,
        session_factory,
        default_limit: int = 20,
        max_page_size: int = 100,
        min_query_length: int = 2,
        max_variations: int = 24,
        max_workers: int = 8,
        caps: Dict[str, int] = None
    ):
        self.session_factory = session_factory
        self.default_limit = default_limit
        self.max_page_size = max_page_size
        self.min_query_length = min_query_length
        self.max_variations = max_variations
        self.max_workers = max_workers
        self.caps = {**DEFAULT_CAPS, **(caps or {})}

    @classmethod
    def from_settings(cls, session_factory, config=None) -> "FuzzySearchEngine":
        if config is None:
            from georef.core.config import settings as config
        return cls(
            session_factory,
            default_limit=config.SEARCH_DEFAULT_LIMIT,
            max_page_size=config.SEARCH_MAX_PAGE_SIZE,
            min_query_length=config.SEARCH_MIN_QUERY_LENGTH,
            max_variations=config.SEARCH_MAX_VARIATIONS,
            max_workers=config.SEARCH_MAX_WORKERS,
            caps={
                "region": config.SEARCH_REGION_CAP,
                "province": config.SEARCH_PROVINCE_CAP,
                "city": config.SEARCH_CITY_CAP,
                "city_by_province": config.SEARCH_CITY_BY_PROVINCE_CAP,
                "barangay": config.SEARCH_BARANGAY_CAP,
                "barangay_by_city": config.SEARCH_BARANGAY_BY_CITY_CAP,
                "barangay_by_province": config.SEARCH_BARANGAY_BY_PROVINCE_CAP,
            }
        )

    def search(
        self,
        q: Optional[str],
        levels: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Dict:
        """
        Returns:
            {'data': [...], 'count', 'totalCount', 'offset', 'hasMore'}

            totalCount counts the deduplicated candidates, each query being
            capped at min(page size, level cap); it is not a store-wide total.

        Raises:
            BackendUnavailableError: a query failed
        """
        offset = max(int(offset or 0), 0)
        page_size = min(max(int(limit or self.default_limit), 1), self.max_page_size)
        query = normalize_query(q)

        if len(query) < self.min_query_length:
            return self._page([], offset, page_size)

        levels = [level for level in (levels or ()) if level in LEVEL_QUERIES] or ["city"]
        variations = build_variations(query, self.max_variations)

        tasks = [
            (fn, pattern, min(page_size, self.caps[cap_key]))
            for level in levels
            for pattern in variations
            for fn, cap_key in LEVEL_QUERIES[level]
        ]
        logger.debug(f"[Search] '{query}' → {len(variations)} variations, {len(tasks)} queries")

        matches = dedupe(self._run(tasks, query))
        matches.sort(key=rank_key([query] + expand_abbreviations(query)))

        logger.info(f"[Search] '{query}' levels={','.join(levels)} → {len(matches)} matches")
        return self._page(matches, offset, page_size)

    def _run(self, tasks: List[tuple], query: str) -> List[Dict]:
        """Results in task order, regardless of completion order."""
        if not tasks:
            return []
        workers = max(1, min(self.max_workers, len(tasks)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self._execute, fn, pattern, cap) for fn, pattern, cap in tasks]
            try:
                results = [future.result() for future in futures]
            except SQLAlchemyError as e:
                for future in futures:
                    future.cancel()
                logger.error(f"[Search] ❌ Query failed for '{query}': {e}")
                raise BackendUnavailableError(f"search '{query}'", e) from e
        return [match for rows in results for match in rows]

    def _execute(self, fn, pattern: str, cap: int) -> List[Dict]:
        with self.session_factory() as db:
            return fn(db, pattern, cap)

    @staticmethod
    def _page(matches: List[Dict], offset: int, page_size: int) -> Dict:
        page = matches[offset:offset + page_size]
        return {
            "data": page,
            "count": len(page),
            "totalCount": len(matches),
            "offset": offset,
            "hasMore": offset + len(page) < len(matches),
        }
