from .psgc import (
    RegionRow,
    ProvinceRow,
    CityRow,
    BarangayRow,
    GeoOptionResponse,
    LookupResponse,
    AddressLabelsResponse,
    SearchMatch,
    SearchResponse,
)
