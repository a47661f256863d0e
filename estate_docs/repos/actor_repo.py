import uuid
from typing import Optional

from sqlalchemy import select

from models.models import Property, Tenancy, User


class ActorRepo:
    def __init__(self, db):
        self.db = db

    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_property(self, property_id: uuid.UUID) -> Optional[Property]:
        result = await self.db.execute(
            select(Property).where(Property.id == property_id)
        )
        return result.scalar_one_or_none()

    async def owned_property_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        result = await self.db.execute(
            select(Property.id).where(Property.owner_id == user_id)
        )
        return set(result.scalars().all())

    async def managed_property_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        result = await self.db.execute(
            select(Property.id).where(Property.managed_by_id == user_id)
        )
        return set(result.scalars().all())

    async def tenancy_property_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        result = await self.db.execute(
            select(Tenancy.property_id).where(
                Tenancy.tenant_id == user_id,
                Tenancy.is_active.is_(True),
            )
        )
        return set(result.scalars().all())
