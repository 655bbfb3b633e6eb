"""Content repositories and the content-type registry.

The engine never touches a content model directly. LifecycleGuard resolves a
repository from the ContentRegistry by type tag (``units``, ``lessons``, ...)
and works through the IContentRepository capability: get, create, apply,
save, delete and serialize.

Key exports:
- SqlAlchemyContentRepository — generic repository over one ORM model
- ContentRegistry             — tag -> repository factory, bound to one session
- DEFAULT_CONTENT_MODELS      — the nine content types shipped with the service
- build_default_registry()    — registry with every default content type registered
"""

from collections.abc import Callable
from datetime import UTC, date, datetime
from decimal import Decimal
from functools import partial
from typing import Any

from sqlalchemy import DateTime
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession

from content_lifecycle_engine.adapters.database import Base
from content_lifecycle_engine.core.interfaces import IContentRepository
from content_lifecycle_engine.core.models import (
    Exercise,
    GuideBookEntry,
    LearningPath,
    Lesson,
    Quiz,
    QuizQuestion,
    Section,
    Unit,
    VocabularyItem,
)
from content_lifecycle_engine.errors import NotFoundError, ValidationError
from content_lifecycle_engine.observability import get_logger

logger = get_logger(__name__)

ContentRepositoryFactory = Callable[[AsyncSession], IContentRepository]

DEFAULT_CONTENT_MODELS: dict[str, type[Base]] = {
    "learning-paths": LearningPath,
    "units": Unit,
    "lessons": Lesson,
    "sections": Section,
    "exercises": Exercise,
    "quizzes": Quiz,
    "quiz-questions": QuizQuestion,
    "vocabulary": VocabularyItem,
    "guide-entries": GuideBookEntry,
}


def _json_safe(value: Any) -> Any:
    if isinstance(value, datetime):
        # SQLite hands back naive datetimes; every stored timestamp is UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


class SqlAlchemyContentRepository:
    """IContentRepository implementation over a single ORM model.

    Args:
        session: The primary DB session.
        model: The content model class (must use ContentMixin).
        type_tag: Registry tag the model is exposed under.
    """

    def __init__(self, session: AsyncSession, model: type[Base], type_tag: str) -> None:
        self._session = session
        self._model = model
        self._columns = {attr.key: attr.columns[0] for attr in sa_inspect(model).column_attrs}
        self.type_tag = type_tag
        self.model_name = model.__name__

    async def get(self, content_id: int) -> Any:
        """Retrieve an item by primary key.

        Raises:
            NotFoundError: If no item exists with this id.
        """
        item = await self._session.get(self._model, content_id)
        if item is None:
            raise NotFoundError(resource=self.model_name, resource_id=content_id)
        return item

    async def create(self, attributes: dict[str, Any]) -> Any:
        """Insert a new item and flush it so its id is available.

        Raises:
            ValidationError: If a required column is missing from the attribute map.
        """
        item = self._model()
        self.apply(item, attributes)
        for key, column in self._columns.items():
            if key == "id" or column.nullable or column.default is not None:
                continue
            if getattr(item, key) is None:
                raise ValidationError(message=f"The {key} field is required.", field=key)
        self._session.add(item)
        await self._session.flush()
        return item

    def apply(self, item: Any, attributes: dict[str, Any]) -> None:
        """Overwrite item attributes from an attribute map.

        The primary key and keys that are not columns of the model are
        ignored. ISO-8601 strings for DateTime columns are parsed back into
        datetimes so that a snapshot payload can be applied as-is.

        Raises:
            ValidationError: If a non-nullable column is set to None, or a
                DateTime value is not a valid ISO-8601 string.
        """
        for key, value in attributes.items():
            column = self._columns.get(key)
            if key == "id" or column is None:
                continue
            if value is None and not column.nullable:
                raise ValidationError(message=f"The {key} field cannot be null.", field=key)
            if isinstance(column.type, DateTime) and isinstance(value, str):
                try:
                    value = datetime.fromisoformat(value)
                except ValueError as exc:
                    raise ValidationError(message=f"The {key} field must be a valid date.", field=key) from exc
            setattr(item, key, value)

    async def save(self, item: Any) -> Any:
        """Flush pending changes to the item."""
        self._session.add(item)
        await self._session.flush()
        return item

    async def delete(self, item: Any) -> None:
        """Remove the item. Its versions and audit entries are kept."""
        await self._session.delete(item)
        await self._session.flush()

    def serialize(self, item: Any) -> dict[str, Any]:
        """Return every column of the item with JSON-safe values."""
        return {key: _json_safe(getattr(item, key)) for key in self._columns}


class ContentRegistry:
    """Maps content-type tags to repository factories.

    A registry is bound to one session; every repository it hands out shares
    that session and therefore the caller's transaction.

    Args:
        session: The primary DB session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._factories: dict[str, ContentRepositoryFactory] = {}
        self._repositories: dict[str, IContentRepository] = {}

    def register(self, type_tag: str, factory: ContentRepositoryFactory) -> None:
        """Register a repository factory under a tag, replacing any previous one."""
        self._factories[type_tag] = factory
        self._repositories.pop(type_tag, None)

    def repository(self, type_tag: str) -> IContentRepository:
        """Return the repository registered for a tag.

        Raises:
            NotFoundError: If the tag is not registered.
        """
        if type_tag not in self._factories:
            raise NotFoundError(resource="Content type", resource_id=type_tag, message="Invalid content type.")
        if type_tag not in self._repositories:
            self._repositories[type_tag] = self._factories[type_tag](self._session)
        return self._repositories[type_tag]

    def type_tags(self) -> list[str]:
        """Return every registered tag in registration order."""
        return list(self._factories)


def build_default_registry(session: AsyncSession) -> ContentRegistry:
    """Create a registry with every default content type registered.

    Args:
        session: The primary DB session.

    Returns:
        ContentRegistry covering DEFAULT_CONTENT_MODELS.
    """
    registry = ContentRegistry(session)
    for type_tag, model in DEFAULT_CONTENT_MODELS.items():
        registry.register(type_tag, partial(SqlAlchemyContentRepository, model=model, type_tag=type_tag))
    return registry
