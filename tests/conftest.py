"""Pytest configuration and shared fixtures."""

import pytest

from georef.core.database import build_engine, build_session_factory, init_db
from georef.services import psgc_store


REGIONS = [
    {"code": "04", "name": "Region IV-A", "is_active": True},
    {"code": "13", "name": "National Capital Region (NCR)", "is_active": True},
]

PROVINCES = [
    {"code": "0414", "name": "Cavite", "region_code": "04", "is_active": True},
    {"code": "0434", "name": "Laguna", "region_code": "04", "is_active": True},
]

CITIES = [
    {"code": "041419", "name": "Bacoor", "province_code": "0414", "type": "City",
     "is_independent": False, "is_active": True},
    {"code": "041420", "name": "Imus", "province_code": "0414", "type": "City",
     "is_independent": False, "is_active": True},
    {"code": "043404", "name": "Calamba", "province_code": "0434", "type": "City",
     "is_independent": False, "is_active": True},
    {"code": "137404", "name": "Quezon City", "province_code": None, "type": "City",
     "is_independent": True, "is_active": True},
    {"code": "133900", "name": "City of Manila", "province_code": None, "type": "City",
     "is_independent": True, "is_active": True},
]

BARANGAYS = [
    {"code": "0414190001", "name": "Alima", "city_municipality_code": "041419",
     "urban_rural_status": "Urban", "is_active": True},
    {"code": "0414190002", "name": "Aniban I", "city_municipality_code": "041419",
     "urban_rural_status": "Urban", "is_active": True},
    {"code": "0434040001", "name": "Bagong Kalsada", "city_municipality_code": "043404",
     "urban_rural_status": "Urban", "is_active": True},
    {"code": "1374040001", "name": "Bagong Pag-asa", "city_municipality_code": "137404",
     "urban_rural_status": "Urban", "is_active": True},
]


def seed(db, regions=(), provinces=(), cities=(), barangays=()):
    """Writes canonical rows straight to the tables and commits."""
    for level, rows in (("region", regions), ("province", provinces),
                        ("city", cities), ("barangay", barangays)):
        if rows:
            psgc_store.upsert_rows(db, level, [dict(row) for row in rows])
    db.commit()


@pytest.fixture
def engine(tmp_path):
    """SQLite file database per test (search workers need a shared file)."""
    engine = build_engine(f"sqlite:///{tmp_path / 'georef.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def hierarchy(db):
    """A small, consistent hierarchy with two independent cities."""
    seed(db, REGIONS, PROVINCES, CITIES, BARANGAYS)
    return db
