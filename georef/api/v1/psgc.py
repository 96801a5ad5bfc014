# georef/api/v1/psgc.py
"""
Endpoints for the PSGC hierarchy: lookup, search, cascading selectors and
the integrity report.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from georef.api.dependencies import get_auditor, get_resolver, get_search_engine
from georef.schemas.psgc import (
    AddressLabelsResponse,
    GeoOptionResponse,
    LookupResponse,
    SearchResponse,
)
from georef.services.hierarchy_resolver import HierarchyResolver
from georef.services.integrity_service import IntegrityAuditor
from georef.services.search_service import FuzzySearchEngine, parse_levels


router = APIRouter(prefix="/psgc", tags=["PSGC"])


# ========================================
# SEARCH / LOOKUP
# ========================================

@router.get("/search", response_model=SearchResponse)
def search_locations(
    q: str = Query("", description="Free text (place name or abbreviation)"),
    levels: Optional[str] = Query(None, description="Comma-separated levels or 'all' (default: city)"),
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    engine: FuzzySearchEngine = Depends(get_search_engine)
):
    """
    Fuzzy search across the hierarchy.

    Queries shorter than 2 characters return an empty page, so the UI can
    call this on every keystroke.

    Each underlying query fetches at most min(limit, level cap) rows, so
    totalCount and hasMore describe that bounded candidate set, not every
    matching row in the store. Narrow the query to reach rows beyond it.
    """
    return engine.search(q, levels=parse_levels(levels), limit=limit, offset=offset)


@router.get("/lookup", response_model=LookupResponse)
def lookup_code(
    code: str = Query(..., description="PSGC code of any level"),
    resolver: HierarchyResolver = Depends(get_resolver)
):
    """Resolves a code to its full ancestor chain."""
    return resolver.resolve(code)


@router.get("/address", response_model=AddressLabelsResponse)
def address_labels(
    region: Optional[str] = None,
    province: Optional[str] = None,
    city: Optional[str] = None,
    barangay: Optional[str] = None,
    resolver: HierarchyResolver = Depends(get_resolver)
):
    """Display names for stored address codes; unknown codes come back null."""
    return resolver.lookup_address(region, province, city, barangay)


# ========================================
# CASCADING SELECTORS
# ========================================

@router.get("/regions", response_model=List[GeoOptionResponse])
def list_regions(resolver: HierarchyResolver = Depends(get_resolver)):
    return resolver.list_regions()


@router.get("/regions/{code}/independent-cities", response_model=List[GeoOptionResponse])
def list_independent_cities(code: str, resolver: HierarchyResolver = Depends(get_resolver)):
    return resolver.list_independent_cities(code)


@router.get("/provinces", response_model=List[GeoOptionResponse])
def list_provinces(
    region: Optional[str] = None,
    resolver: HierarchyResolver = Depends(get_resolver)
):
    return resolver.list_provinces(region)


@router.get("/cities", response_model=List[GeoOptionResponse])
def list_cities(
    province: Optional[str] = None,
    resolver: HierarchyResolver = Depends(get_resolver)
):
    return resolver.list_cities(province)


@router.get("/barangays", response_model=List[GeoOptionResponse])
def list_barangays(
    city: Optional[str] = None,
    resolver: HierarchyResolver = Depends(get_resolver)
):
    return resolver.list_barangays(city)


# ========================================
# INTEGRITY
# ========================================

@router.get("/integrity")
def integrity_report(auditor: IntegrityAuditor = Depends(get_auditor)):
    """Read-only audit of parent/child relationships."""
    return auditor.audit().to_dict()
