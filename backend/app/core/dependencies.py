"""
Service dependencies for FastAPI.

Every service is built per request on the request's database session. The
user directory and PDV catalog are separate dependencies so deployments and
tests can override them with `app.dependency_overrides`.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.redis_client import get_redis
from backend.app.db.session import get_db, get_session_factory
from backend.app.services.auto_close import SessionAutoCloser
from backend.app.services.directory import PdvCatalog, UserDirectory
from backend.app.services.pdv_visits import PdvVisitTracker
from backend.app.services.working_sessions import WorkingSessionManager


def get_user_directory(db: AsyncSession = Depends(get_db)) -> UserDirectory:
    return UserDirectory(db)


def get_pdv_catalog(db: AsyncSession = Depends(get_db)) -> PdvCatalog:
    return PdvCatalog(db)


def get_visit_tracker(
    db: AsyncSession = Depends(get_db),
    pdv_catalog: PdvCatalog = Depends(get_pdv_catalog)
) -> PdvVisitTracker:
    return PdvVisitTracker(db, pdv_catalog=pdv_catalog)


def get_session_manager(
    db: AsyncSession = Depends(get_db),
    user_directory: UserDirectory = Depends(get_user_directory),
    pdv_catalog: PdvCatalog = Depends(get_pdv_catalog),
    visit_tracker: PdvVisitTracker = Depends(get_visit_tracker)
) -> WorkingSessionManager:
    return WorkingSessionManager(
        db,
        user_directory=user_directory,
        pdv_catalog=pdv_catalog,
        visit_tracker=visit_tracker
    )


def get_auto_closer(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    redis=Depends(get_redis)
) -> SessionAutoCloser:
    """
    The closer opens its own session per working session, so it receives the
    session factory rather than the request session.
    """
    return SessionAutoCloser(session_factory, redis=redis)
