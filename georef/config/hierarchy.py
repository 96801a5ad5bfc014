# georef/config/hierarchy.py
"""
Static definition of the four PSGC levels.

Parent codes are structural prefixes of the child code:
    Barangay 0421140001 → City 042114 → Province 0421 → Region 04
"""
from georef.core.exceptions import InvalidCodeError


LEVELS = ("region", "province", "city", "barangay")

LEVEL_DEFINITIONS = {
    # ========== REGION ==========
    'region': {
        'label': 'Region',
        'table': 'psgc_regions',
        'code_width': 2,
        'max_code_width': 2,
        'parent_level': None,
        'parent_field': None,
        'depth': 1,
    },

    # ========== PROVINCE ==========
    'province': {
        'label': 'Province',
        'table': 'psgc_provinces',
        'code_width': 4,
        'max_code_width': 4,
        'parent_level': 'region',
        'parent_field': 'region_code',
        'depth': 2,
    },

    # ========== CITY / MUNICIPALITY ==========
    'city': {
        'label': 'City/Municipality',
        'table': 'psgc_cities_municipalities',
        'code_width': 6,
        'max_code_width': 6,
        'parent_level': 'province',
        'parent_field': 'province_code',
        'depth': 3,
    },

    # ========== BARANGAY ==========
    'barangay': {
        'label': 'Barangay',
        'table': 'psgc_barangays',
        'code_width': 9,
        'max_code_width': 10,
        'parent_level': 'city',
        'parent_field': 'city_municipality_code',
        'depth': 4,
    },
}

LEVEL_ORDER = {level: index for index, level in enumerate(LEVELS)}

CITY_TYPES = ("City", "Municipality")


def code_width(level: str) -> int:
    return LEVEL_DEFINITIONS[level]['code_width']


def parent_level(level: str):
    return LEVEL_DEFINITIONS[level]['parent_level']


def prefix_for(code: str, level: str) -> str:
    """Structural ancestor code of `code` at `level` (first N digits)."""
    return code[:code_width(level)]


def expected_parent_code(level: str, code: str):
    """Parent code implied by `code` (None for regions or empty codes)."""
    parent = parent_level(level)
    if parent is None or not code:
        return None
    return prefix_for(code, parent)


def level_for_code(code: str) -> str:
    """
    Determines the hierarchy level from the code length alone.

    2 → region, 4 → province, 6 → city, 9 or more → barangay.
    Raises InvalidCodeError for anything else.
    """
    if code is None:
        raise InvalidCodeError("", "code is required")

    code = str(code).strip()
    if not code.isdigit():
        raise InvalidCodeError(code, "code must contain digits only")

    length = len(code)
    if length == 2:
        return 'region'
    if length == 4:
        return 'province'
    if length == 6:
        return 'city'
    if length >= 9:
        return 'barangay'
    raise InvalidCodeError(code)
