from collections.abc import Callable
from decimal import Decimal
from typing import Annotated, ClassVar

from sqlalchemy import Dialect, String, Text
from sqlalchemy.orm import DeclarativeBase, mapped_column
from sqlalchemy.types import TypeDecorator


class _StoredAsString[T: (int, Decimal)](TypeDecorator[T]):
    """
    Persist a number by its exact string form and rebuild it with `parse` on load.
    """

    parse: ClassVar[Callable[[str], int | Decimal]]

    def process_bind_param(
        self,
        value: T | None,
        dialect: Dialect,  # noqa: ARG002
    ) -> str | None:
        return None if value is None else str(value)

    def process_result_value(
        self,
        value: str | None,
        dialect: Dialect,  # noqa: ARG002
    ) -> T | None:
        return None if value is None else type(self).parse(value)  # type: ignore[return-value]


class IntMappedToString(_StoredAsString[int]):
    """
    Raw token amounts and scaled balances are signed 256-bit values. The longest, -2**255, has 78
    digits plus a sign.
    """

    cache_ok = True
    impl = String(79)
    parse = int


class DecimalMappedToString(_StoredAsString[Decimal]):
    """
    USD values and points, kept at full `Decimal` precision.
    """

    cache_ok = True
    impl = Text
    parse = Decimal


Address = Annotated[str, mapped_column(String(42))]
BigInteger = Annotated[int, IntMappedToString]
BigDecimal = Annotated[Decimal, DecimalMappedToString]


class Base(DeclarativeBase):
    type_annotation_map: ClassVar = {
        BigInteger: IntMappedToString,
        BigDecimal: DecimalMappedToString,
        str: Text,
    }
