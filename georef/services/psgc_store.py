"""
Shared write/read helpers over the four PSGC tables.

Every write is keyed by `code`, so batches can be retried safely.
"""
from typing import Dict, Iterable, List, Set

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from georef.models.psgc import Region, Province, CityMunicipality, Barangay


MODELS = {
    "region": Region,
    "province": Province,
    "city": CityMunicipality,
    "barangay": Barangay,
}

# Chunk size for `code IN (...)` lookups
IN_CLAUSE_CHUNK = 500

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def upsert_rows(db: Session, level: str, rows: List[Dict], update: bool = True) -> int:
    """
    Insert-or-update rows keyed by code.

    update=False turns the statement into insert-if-absent, leaving
    existing rows untouched.
    """
    if not rows:
        return 0

    model = MODELS[level]
    table = model.__table__
    insert = _DIALECT_INSERTS.get(db.get_bind().dialect.name)

    if insert is None:
        return _merge_rows(db, model, rows, update)

    stmt = insert(table).values(rows)
    if update:
        update_columns = {
            key: stmt.excluded[key]
            for key in rows[0].keys()
            if key != "code"
        }
        update_columns["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.code],
            set_=update_columns
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=[table.c.code])

    db.execute(stmt)
    return len(rows)


def _merge_rows(db: Session, model, rows: List[Dict], update: bool) -> int:
    """Fallback for dialects without ON CONFLICT support."""
    for row in rows:
        existing = db.get(model, row["code"])
        if existing is None:
            db.add(model(**row))
        elif update:
            for key, value in row.items():
                setattr(existing, key, value)
    db.flush()
    return len(rows)


def count_rows(db: Session, level: str) -> int:
    model = MODELS[level]
    return db.scalar(select(func.count()).select_from(model)) or 0


def existing_codes(db: Session, level: str, codes: Iterable[str]) -> Set[str]:
    """Subset of `codes` that exist in the level table."""
    model = MODELS[level]
    codes = list(codes)
    found = set()
    for start in range(0, len(codes), IN_CLAUSE_CHUNK):
        chunk = codes[start:start + IN_CLAUSE_CHUNK]
        found.update(db.scalars(select(model.code).where(model.code.in_(chunk))))
    return found


def all_codes(db: Session, level: str) -> Set[str]:
    model = MODELS[level]
    return set(db.scalars(select(model.code)))


def delete_all(db: Session, level: str) -> int:
    model = MODELS[level]
    return db.query(model).delete(synchronize_session=False)


def delete_codes(db: Session, level: str, codes: Iterable[str]) -> int:
    model = MODELS[level]
    codes = list(codes)
    deleted = 0
    for start in range(0, len(codes), IN_CLAUSE_CHUNK):
        chunk = codes[start:start + IN_CLAUSE_CHUNK]
        deleted += db.query(model).filter(model.code.in_(chunk)).delete(synchronize_session=False)
    return deleted
