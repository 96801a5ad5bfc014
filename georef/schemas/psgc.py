# georef/schemas/psgc.py
from pydantic import BaseModel, ConfigDict, field_validator
from typing import List, Optional


def _check_code(value: str, min_width: int, max_width: int, field: str) -> str:
    if value is None:
        raise ValueError(f'{field} is required')
    value = str(value).strip()
    if not value.isdigit():
        raise ValueError(f'{field} must contain digits only')
    if not min_width <= len(value) <= max_width:
        if min_width == max_width:
            raise ValueError(f'{field} must have {min_width} digits')
        raise ValueError(f'{field} must have {min_width}-{max_width} digits')
    return value


# ──────────────────────────────────────────────
# CANONICAL ROWS (ingestion)
# ──────────────────────────────────────────────

class RegionRow(BaseModel):
    code: str
    name: str
    is_active: bool = True

    @field_validator('code')
    @classmethod
    def code_width(cls, v):
        return _check_code(v, 2, 2, 'code')

    @field_validator('name')
    @classmethod
    def name_must_not_be_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('name must not be empty')
        return v.strip()


class ProvinceRow(RegionRow):
    region_code: str

    @field_validator('code')
    @classmethod
    def code_width(cls, v):
        return _check_code(v, 4, 4, 'code')

    @field_validator('region_code')
    @classmethod
    def parent_code_width(cls, v):
        return _check_code(v, 2, 2, 'region_code')


class CityRow(RegionRow):
    province_code: Optional[str] = None
    type: str = 'Municipality'
    is_independent: bool = False

    @field_validator('code')
    @classmethod
    def code_width(cls, v):
        return _check_code(v, 6, 6, 'code')

    @field_validator('province_code')
    @classmethod
    def parent_code_width(cls, v):
        if v is None:
            return None
        return _check_code(v, 4, 4, 'province_code')

    @field_validator('type')
    @classmethod
    def type_valid(cls, v):
        if v not in ('City', 'Municipality'):
            raise ValueError("type must be 'City' or 'Municipality'")
        return v


class BarangayRow(RegionRow):
    city_municipality_code: str
    urban_rural_status: Optional[str] = None

    @field_validator('code')
    @classmethod
    def code_width(cls, v):
        return _check_code(v, 9, 10, 'code')

    @field_validator('city_municipality_code')
    @classmethod
    def parent_code_width(cls, v):
        return _check_code(v, 6, 6, 'city_municipality_code')


# ──────────────────────────────────────────────
# RESPONSES
# ──────────────────────────────────────────────

class GeoOptionResponse(BaseModel):
    code: str
    name: str
    region_code: Optional[str] = None
    province_code: Optional[str] = None
    city_municipality_code: Optional[str] = None
    type: Optional[str] = None
    is_independent: Optional[bool] = None

    model_config = ConfigDict(from_attributes=True)


class ChainLink(BaseModel):
    level: str
    code: Optional[str] = None
    name: Optional[str] = None


class LookupResponse(BaseModel):
    code: str
    name: str
    level: str
    region_code: Optional[str] = None
    region_name: Optional[str] = None
    province_code: Optional[str] = None
    province_name: Optional[str] = None
    city_code: Optional[str] = None
    city_name: Optional[str] = None
    city_type: Optional[str] = None
    is_independent: Optional[bool] = None
    barangay_code: Optional[str] = None
    barangay_name: Optional[str] = None
    chain: List[ChainLink] = []
    full_address: str


class AddressLabelsResponse(BaseModel):
    region: Optional[str] = None
    province: Optional[str] = None
    city: Optional[str] = None
    barangay: Optional[str] = None
    full_address: str = ""


class SearchMatch(BaseModel):
    code: str
    name: str
    level: str
    type: Optional[str] = None
    region_code: Optional[str] = None
    region_name: Optional[str] = None
    province_code: Optional[str] = None
    province_name: Optional[str] = None
    city_code: Optional[str] = None
    city_name: Optional[str] = None
    city_type: Optional[str] = None
    is_independent: Optional[bool] = None
    barangay_code: Optional[str] = None
    barangay_name: Optional[str] = None
    full_address: str


class SearchResponse(BaseModel):
    data: List[SearchMatch]
    count: int
    totalCount: int
    offset: int
    hasMore: bool
