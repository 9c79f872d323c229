"""
Base Data Access Object (DAO) class.

WHY: The DAO pattern separates database operations from business logic.
Every entity here is soft-deletable, so the DAO is also where "deleted
rows are invisible unless asked for" is enforced once, instead of in every
query of every service.

There is deliberately no hard delete: entities leave the active set only
through the cascade engine.
"""

from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from worktrack.models.base import Base

# Type variable for model class
ModelType = TypeVar("ModelType", bound=Base)


class BaseDAO(Generic[ModelType]):
    """
    Base Data Access Object providing soft-delete aware reads and creation.

    Type Parameters:
        ModelType: The SQLAlchemy model class this DAO manages
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """
        Initialize DAO with model class and database session.

        WHY: Dependency injection of the session lets the mutation
        coordinator hand its transactional session to every DAO used
        inside one unit of work.

        Args:
            model: The SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    def _select(
        self,
        with_deleted: bool = False,
        only_deleted: bool = False,
        where: Optional[ColumnElement] = None,
    ) -> Select:
        """
        Base SELECT applying the soft-delete visibility rule.

        Args:
            with_deleted: Include deleted rows alongside active ones
            only_deleted: Return deleted rows only (overrides with_deleted)
            where: Extra predicate (e.g. a scope filter)
        """
        query = select(self.model)
        if only_deleted:
            query = query.where(self.model.is_deleted.is_(True))
        elif not with_deleted:
            query = query.where(self.model.is_deleted.is_(False))
        if where is not None:
            query = query.where(where)
        return query

    async def create(self, **kwargs: Any) -> ModelType:
        """
        Create a new record.

        Args:
            **kwargs: Field values for the new record

        Returns:
            The created model instance with database-generated fields populated

        Raises:
            IntegrityError: If unique constraints are violated
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()  # Flush to get auto-generated fields
        return instance

    async def get_by_id(self, id: int, with_deleted: bool = False) -> Optional[ModelType]:
        """
        Retrieve a single record by primary key.

        Args:
            id: Primary key value
            with_deleted: Also return the record if it is soft-deleted

        Returns:
            The model instance if found (and visible), None otherwise
        """
        result = await self.session.execute(
            self._select(with_deleted=with_deleted, where=self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        with_deleted: bool = False,
        only_deleted: bool = False,
        where: Optional[ColumnElement] = None,
        **filters: Any,
    ) -> List[ModelType]:
        """
        Retrieve multiple records with optional pagination and filtering.

        Args:
            skip: Number of records to skip (for pagination)
            limit: Maximum number of records to return
            with_deleted: Include soft-deleted records
            only_deleted: Return soft-deleted records only
            where: Extra predicate, typically a scope filter
            **filters: Field name to value filters (e.g., department_id=1)

        Returns:
            List of model instances matching the filters
        """
        query = self._select(with_deleted=with_deleted, only_deleted=only_deleted, where=where)

        # Apply filters
        for field, value in filters.items():
            if hasattr(self.model, field):
                query = query.where(getattr(self.model, field) == value)

        # Apply pagination
        query = query.order_by(self.model.id).offset(skip).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_many_by_ids(self, ids: List[int], with_deleted: bool = False) -> List[ModelType]:
        """
        Retrieve the records whose ids are in ``ids``.

        Missing (or hidden) ids are simply absent from the result; callers
        compare lengths to detect them.
        """
        if not ids:
            return []
        result = await self.session.execute(
            self._select(with_deleted=with_deleted, where=self.model.id.in_(ids))
        )
        return list(result.scalars().all())

    async def count(
        self,
        with_deleted: bool = False,
        only_deleted: bool = False,
        where: Optional[ColumnElement] = None,
        **filters: Any,
    ) -> int:
        """
        Count records matching filters.

        Args:
            with_deleted: Include soft-deleted records
            only_deleted: Count soft-deleted records only
            where: Extra predicate
            **filters: Field name to value filters

        Returns:
            Number of records matching the filters
        """
        query = self._select(with_deleted=with_deleted, only_deleted=only_deleted, where=where)

        for field, value in filters.items():
            if hasattr(self.model, field):
                query = query.where(getattr(self.model, field) == value)

        result = await self.session.execute(
            select(func.count()).select_from(query.subquery())
        )
        return result.scalar_one()

    async def get_by_id_and_org(
        self, id: int, organization_id: int, with_deleted: bool = False
    ) -> Optional[ModelType]:
        """
        Retrieve a record by ID, ensuring it belongs to the specified organization.

        WHY: Cross-organization references (a vendor of another tenant on a
        project task) must look exactly like missing ones.

        Args:
            id: Primary key value
            organization_id: Organization ID that must own the record
            with_deleted: Also match soft-deleted records

        Returns:
            The model instance if found and belongs to org, None otherwise

        Raises:
            AttributeError: If the model doesn't have an organization_id field
        """
        if not hasattr(self.model, "organization_id"):
            raise AttributeError(
                f"{self.model.__name__} is not a multi-tenant model (no organization_id field)"
            )

        result = await self.session.execute(
            self._select(
                with_deleted=with_deleted,
                where=(self.model.id == id) & (self.model.organization_id == organization_id),
            )
        )
        return result.scalar_one_or_none()
