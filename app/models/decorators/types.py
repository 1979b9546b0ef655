from enum import Enum
from typing import Any, TypeVar

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

EnumT = TypeVar("EnumT", bound=Enum)


class EnumStringType(TypeDecorator[EnumT]):
    """Stores an enum member by name in a plain string column, so new members need no migration."""

    impl = String(50)
    cache_ok = True

    def __init__(self, enum_class: type[EnumT], *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._enum_class = enum_class

    def _member(self, name: str) -> EnumT:
        try:
            return self._enum_class[name]
        except KeyError:
            raise ValueError(f"{name!r} is not a member of {self._enum_class.__name__}") from None

    def process_bind_param(self, value: EnumT | str | None, dialect: Any) -> str | None:
        if value is None:
            return None
        # Raw UPDATE statements pass the member name
        if isinstance(value, str):
            value = self._member(value)
        return value.name

    def process_result_value(self, value: str | None, dialect: Any) -> EnumT | None:
        return None if value is None else self._member(value)
