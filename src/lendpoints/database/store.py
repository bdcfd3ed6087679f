from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, scoped_session

from lendpoints.database.models import Base


class EntityStore:
    """
    Key-value access to persisted entities, addressed by (table, id).

    Every write is flushed immediately so that later loads within the same session observe it.
    Nothing is committed here: the owner of the session decides when an invocation is durable.
    """

    def __init__(self, session: Session | scoped_session[Session]) -> None:
        self.session = session

    def load[T: Base](self, table: type[T], entity_id: str) -> T | None:
        return self.session.get(table, entity_id)

    def save(self, entity: Base) -> None:
        self.session.add(entity)
        self.session.flush()

    def delete(self, table: type[Base], entity_id: str) -> None:
        if (entity := self.session.get(table, entity_id)) is not None:
            self.session.delete(entity)
            self.session.flush()

    def load_related[T: Base](self, table: type[T], field: str, entity_id: Any) -> list[T]:
        """
        Load all rows of `table` whose `field` column references `entity_id`.
        """

        return list(
            self.session.scalars(
                select(table).where(getattr(table, field) == entity_id).order_by(table.id)  # type: ignore[attr-defined]
            ).all()
        )
