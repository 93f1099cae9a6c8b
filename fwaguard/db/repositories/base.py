"""
Generic async repository.

No delete and no generic update: rows change only through the service
layer's named operations.
"""

import uuid
from typing import Generic, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fwaguard.db.engine import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    def __init__(self, model: Type[ModelT]):
        self.model = model

    async def add(self, db: AsyncSession, obj: ModelT) -> ModelT:
        """Insert a new record (flushed, not committed)."""
        db.add(obj)
        await db.flush()
        return obj

    async def get_by_id(
        self,
        db: AsyncSession,
        id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[ModelT]:
        """Single record by ID. ``for_update`` takes a row lock where the backend supports it."""
        stmt = select(self.model).where(self.model.id == id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def count(self, db: AsyncSession, *criteria) -> int:
        result = await db.execute(
            select(func.count()).select_from(self.model).where(*criteria)
        )
        return result.scalar_one()
