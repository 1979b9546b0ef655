from typing import Any, Generic, TypeVar, cast

from fastapi_async_sqlalchemy import db
from sqlalchemy import ScalarResult, select
from sqlalchemy.sql.selectable import Select

from app.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepo(Generic[ModelType]):
    """
    Base repository over the request-scoped ``db.session``.

    Writes are flushed but not committed unless asked; the auto-commit middleware (or the caller, for writes that
    must survive a later failure) commits.
    """

    def __init__(self, model: type[ModelType]) -> None:
        self._model = model
        self._db = db

    @property
    def base_stmt(self) -> Select[tuple[ModelType]]:
        return select(self._model)

    async def get(self, id: Any) -> ModelType | None:
        return cast(ModelType | None, await self._db.session.get(self._model, id))

    async def execute(self, query: Select[tuple[ModelType]]) -> ScalarResult[ModelType]:
        """Execute a select and return its scalars."""
        result = await self._db.session.execute(query)
        return cast(ScalarResult[ModelType], result.scalars())

    async def add(self, model: ModelType, commit: bool = False) -> None:
        self._db.session.add(model)
        if commit:
            await self.commit()
        else:
            await self.flush()

    async def update(self, model: ModelType, values: dict[str, Any]) -> ModelType:
        """Set attributes on a loaded instance and flush them."""
        for key, value in values.items():
            setattr(model, key, value)
        await self.flush()
        return model

    async def refresh(self, model: ModelType) -> ModelType:
        """Reload an instance, picking up writes made by UPDATE statements that bypass the identity map."""
        await self._db.session.refresh(model)
        return model

    async def commit(self) -> None:
        await self._db.session.commit()

    async def flush(self) -> None:
        await self._db.session.flush()
