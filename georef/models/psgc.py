"""
PSGC hierarchy models (Region → Province → City/Municipality → Barangay)

Parent references are plain indexed columns, not enforced foreign keys:
orphaned children are reported by the integrity audit instead of being
rejected at insert time.
"""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship, foreign
from sqlalchemy.sql import func

from georef.core.database import Base


class Region(Base):
    __tablename__ = "psgc_regions"

    code = Column(String(10), primary_key=True)  # 2 digits
    name = Column(String(200), nullable=False, index=True)

    # Status
    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    provinces = relationship(
        "Province",
        primaryjoin="Region.code == foreign(Province.region_code)",
        back_populates="region",
        viewonly=True
    )


class Province(Base):
    __tablename__ = "psgc_provinces"

    code = Column(String(10), primary_key=True)  # 4 digits
    name = Column(String(200), nullable=False, index=True)
    region_code = Column(String(10), nullable=False, index=True)

    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    region = relationship(
        "Region",
        primaryjoin="foreign(Province.region_code) == Region.code",
        back_populates="provinces",
        viewonly=True
    )
    cities = relationship(
        "CityMunicipality",
        primaryjoin="Province.code == foreign(CityMunicipality.province_code)",
        back_populates="province",
        viewonly=True
    )


class CityMunicipality(Base):
    __tablename__ = "psgc_cities_municipalities"

    code = Column(String(10), primary_key=True)  # 6 digits
    name = Column(String(200), nullable=False, index=True)
    province_code = Column(String(10), nullable=True, index=True)  # NULL when independent
    type = Column(String(50), nullable=False, default="Municipality")  # 'City' | 'Municipality'
    is_independent = Column(Boolean, default=False)

    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    province = relationship(
        "Province",
        primaryjoin="foreign(CityMunicipality.province_code) == Province.code",
        back_populates="cities",
        viewonly=True
    )
    barangays = relationship(
        "Barangay",
        primaryjoin="CityMunicipality.code == foreign(Barangay.city_municipality_code)",
        back_populates="city",
        viewonly=True
    )


class Barangay(Base):
    __tablename__ = "psgc_barangays"

    code = Column(String(10), primary_key=True)  # 9-10 digits
    name = Column(String(200), nullable=False, index=True)
    city_municipality_code = Column(String(10), nullable=False, index=True)
    urban_rural_status = Column(String(20), nullable=True)

    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    city = relationship(
        "CityMunicipality",
        primaryjoin="foreign(Barangay.city_municipality_code) == CityMunicipality.code",
        back_populates="barangays",
        viewonly=True
    )
