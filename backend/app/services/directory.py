"""
Collaborator lookups consumed by the tracking engine.

The user directory and PDV catalog are owned by other parts of the platform.
These adapters read them from the shared database; deployments with a
different source can subclass them and override the FastAPI dependencies.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import NotFoundError
from backend.app.models.pdv import Pdv
from backend.app.models.user import User


class UserDirectory:
    """Resolves representatives and their route assignment."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: int) -> User:
        """
        Raises:
            NotFoundError: If the user does not exist
        """
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError("User", user_id)
        return user

    async def assigned_route_id(self, user_id: int) -> Optional[int]:
        """Route currently assigned to the user, None when unassigned."""
        user = await self.get_user(user_id)
        return user.assigned_route_id


class PdvCatalog:
    """Supplies PDV coordinates and route membership."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_pdv(self, pdv_id: int) -> Pdv:
        """
        Raises:
            NotFoundError: If the PDV does not exist
        """
        result = await self.db.execute(select(Pdv).where(Pdv.id == pdv_id))
        pdv = result.scalar_one_or_none()
        if not pdv:
            raise NotFoundError("PDV", pdv_id)
        return pdv

    async def pdv_ids_for_route(self, route_id: int) -> List[int]:
        result = await self.db.execute(
            select(Pdv.id).where(Pdv.route_id == route_id).order_by(Pdv.id)
        )
        return list(result.scalars().all())
