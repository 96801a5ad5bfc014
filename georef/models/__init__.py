"""
Export all models
"""
from georef.models.psgc import Region, Province, CityMunicipality, Barangay

__all__ = [
    "Region",
    "Province",
    "CityMunicipality",
    "Barangay"
]
