"""
Shared FastAPI dependencies
"""
from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from georef.core.config import settings
from georef.core.database import SessionLocal, get_db
from georef.services.hierarchy_resolver import HierarchyResolver
from georef.services.integrity_service import IntegrityAuditor
from georef.services.search_service import FuzzySearchEngine


def get_session_factory() -> sessionmaker:
    """Factory for components that open their own sessions (search workers)."""
    return SessionLocal


def get_resolver(db: Session = Depends(get_db)) -> HierarchyResolver:
    return HierarchyResolver(db)


def get_auditor(db: Session = Depends(get_db)) -> IntegrityAuditor:
    return IntegrityAuditor(db, sample_size=settings.AUDIT_SAMPLE_SIZE)


def get_search_engine(session_factory: sessionmaker = Depends(get_session_factory)) -> FuzzySearchEngine:
    return FuzzySearchEngine.from_settings(session_factory)
