"""
Base repository with common CRUD operations.

Provides generic database operations for all feature repositories.
Uses SQLAlchemy async session for non-blocking database access.

Usage:
    class CredentialRepository(BaseRepository[IntegrationCredential]):
        def __init__(self, db: AsyncSession):
            super().__init__(db, IntegrationCredential)

        async def get_for_user(self, user_id: str) -> IntegrationCredential | None:
            return await self.get_by(user_id=user_id)
"""

from typing import TypeVar, Generic, Type
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Base repository for database operations.

    Provides common CRUD methods that can be inherited by feature repositories.
    All methods are async for use with AsyncSession.
    """

    def __init__(self, db: AsyncSession, model: Type[T]):
        """
        Initialize repository.

        Args:
            db: Async database session
            model: SQLAlchemy model class
        """
        self.db = db
        self.model = model

    def _filtered(self, query, **kwargs):
        for key, value in kwargs.items():
            query = query.where(getattr(self.model, key) == value)
        return query

    async def get_by_id(self, id: int) -> T | None:
        """
        Get entity by primary key ID.

        Args:
            id: Primary key value

        Returns:
            Entity if found, None otherwise
        """
        result = await self.db.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def get_by(self, **kwargs) -> T | None:
        """
        Get single entity by arbitrary field values.

        Args:
            **kwargs: Field name-value pairs to filter by

        Returns:
            First matching entity or None
        """
        result = await self.db.execute(self._filtered(select(self.model), **kwargs))
        return result.scalars().first()

    async def exists(self, **kwargs) -> bool:
        """Check whether any entity matches the given field values."""
        query = self._filtered(select(self.model.id), **kwargs).limit(1)
        result = await self.db.execute(query)
        return result.first() is not None

    async def create(self, **kwargs) -> T:
        """
        Create new entity.

        Args:
            **kwargs: Field values for new entity

        Returns:
            Created entity with generated ID
        """
        entity = self.model(**kwargs)
        self.db.add(entity)
        await self.db.flush()
        await self.db.refresh(entity)
        return entity

    async def update(self, entity: T, **kwargs) -> T:
        """
        Update entity fields.

        Args:
            entity: Entity to update
            **kwargs: Field values to update

        Returns:
            Updated entity
        """
        for key, value in kwargs.items():
            setattr(entity, key, value)
        await self.db.flush()
        await self.db.refresh(entity)
        return entity

    async def update_where(self, criteria: dict, **values) -> int:
        """
        Issue a single UPDATE guarded by the given criteria.

        The database evaluates the criteria and the write atomically,
        so this is the building block for compare-and-set updates.

        Args:
            criteria: Field name-value pairs the row must still match
            **values: Field values to write

        Returns:
            Number of rows updated
        """
        statement = update(self.model)
        for key, value in criteria.items():
            statement = statement.where(getattr(self.model, key) == value)
        result = await self.db.execute(
            statement.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete(self, entity: T) -> None:
        """
        Delete entity.

        Args:
            entity: Entity to delete
        """
        await self.db.delete(entity)
        await self.db.flush()

    async def count(self, **kwargs) -> int:
        """
        Count entities matching criteria.

        Args:
            **kwargs: Field name-value pairs to filter by

        Returns:
            Number of matching entities
        """
        query = self._filtered(select(func.count()).select_from(self.model), **kwargs)
        result = await self.db.execute(query)
        return result.scalar() or 0
