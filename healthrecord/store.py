"""Ownership scoped record store with soft deletion.

Every user owned table shares the same access contract:

* reads only ever see *active* rows (``soft_deleted_at IS NULL``);
* every lookup is narrowed by scope filters, normally ``user_id``;
* a row outside the caller's scope is reported exactly like a missing row;
* updates are partial, only the keys present in the change set are written;
* deletion stamps ``soft_deleted_at`` and keeps the row.

:class:`SoftDeleteStore` implements that contract once for any model built on
:class:`~healthrecord.db.models.SoftDeleteMixin`.  Service modules create one
store per model and add their entity specific rules on top.
"""

from __future__ import annotations

from typing import Any, Generic, Iterable, List, Mapping, Optional, Sequence, Type, TypeVar

import sqlalchemy as sa
import structlog
from sqlalchemy.orm import Session

from healthrecord.errors import BadRequestError, NotFoundError
from healthrecord.time_utils import utc_now

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT")

_PROTECTED_FIELDS = frozenset({"id", "user_id", "created_at", "updated_at", "soft_deleted_at"})


class SoftDeleteStore(Generic[ModelT]):
    """Data access for one soft-deletable model."""

    def __init__(
        self,
        model: Type[ModelT],
        *,
        not_found_message: str,
        order_by: Sequence[Any] = (),
    ) -> None:
        self.model = model
        self.not_found_message = not_found_message
        self.order_by = tuple(order_by)

    # -- query helpers -----------------------------------------------------

    def _active_select(self, scope: Mapping[str, Any], criteria: Iterable[Any] = ()) -> sa.Select:
        model = self.model
        stmt = sa.select(model).where(model.soft_deleted_at.is_(None))
        for name, value in scope.items():
            stmt = stmt.where(getattr(model, name) == value)
        for criterion in criteria:
            stmt = stmt.where(criterion)
        return stmt

    # -- contract ----------------------------------------------------------

    def create(self, session: Session, **fields: Any) -> ModelT:
        """Insert a new active record and return it with generated columns."""

        record = self.model(**fields)
        record.soft_deleted_at = None
        session.add(record)
        session.flush()
        session.refresh(record)
        logger.debug("record_created", table=self.model.__tablename__, record_id=record.id)
        return record

    def get_active(self, session: Session, record_id: int, **scope: Any) -> Optional[ModelT]:
        """Return the active record matching ``record_id`` and ``scope`` or ``None``."""

        stmt = self._active_select(scope, (self.model.id == record_id,))
        return session.execute(stmt).unique().scalars().first()

    def find_active_by_id(
        self,
        session: Session,
        record_id: int,
        *,
        message: Optional[str] = None,
        **scope: Any,
    ) -> ModelT:
        """Return the active, in-scope record or raise :class:`NotFoundError`."""

        record = self.get_active(session, record_id, **scope)
        if record is None:
            raise NotFoundError(message or self.not_found_message)
        return record

    def find_active_one(self, session: Session, *criteria: Any, **scope: Any) -> Optional[ModelT]:
        stmt = self._active_select(scope, criteria).order_by(self.model.id.desc())
        return session.execute(stmt).unique().scalars().first()

    def list_active(
        self,
        session: Session,
        *criteria: Any,
        order_by: Optional[Sequence[Any]] = None,
        **scope: Any,
    ) -> List[ModelT]:
        """Return every active in-scope record in the requested order.

        ``order_by`` defaults to the ordering the store was built with; the
        primary key is always appended as a tie breaker so equal sort keys
        come back in a stable order.
        """

        ordering = tuple(order_by) if order_by is not None else self.order_by
        stmt = self._active_select(scope, criteria).order_by(*ordering, self.model.id.desc())
        return list(session.execute(stmt).unique().scalars().all())

    def apply_changes(self, record: ModelT, changes: Mapping[str, Any]) -> ModelT:
        """Write the keys present in ``changes`` onto ``record``.

        Keys absent from ``changes`` are left untouched.  Explicit ``None`` is
        accepted only for nullable columns.
        """

        columns = self.model.__table__.columns
        for name, value in changes.items():
            if name in _PROTECTED_FIELDS or name not in columns:
                continue
            if value is None and not columns[name].nullable:
                raise BadRequestError(f"{name} cannot be null")
            setattr(record, name, value)
        return record

    def update(
        self,
        session: Session,
        record_id: int,
        changes: Mapping[str, Any],
        *,
        message: Optional[str] = None,
        **scope: Any,
    ) -> ModelT:
        """Apply a partial update to an active, in-scope record."""

        record = self.find_active_by_id(session, record_id, message=message, **scope)
        self.apply_changes(record, changes)
        session.flush()
        session.refresh(record)
        return record

    def soft_delete(
        self,
        session: Session,
        record_id: int,
        *,
        message: Optional[str] = None,
        **scope: Any,
    ) -> None:
        """Stamp ``soft_deleted_at`` on an active, in-scope record.

        The stamp is written with a conditional ``UPDATE`` so a record that is
        already deleted, or deleted concurrently, reports ``NotFoundError``.
        """

        model = self.model
        stmt = (
            sa.update(model)
            .where(model.id == record_id, model.soft_deleted_at.is_(None))
            .values(soft_deleted_at=utc_now())
            .execution_options(synchronize_session="fetch")
        )
        for name, value in scope.items():
            stmt = stmt.where(getattr(model, name) == value)
        result = session.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError(message or self.not_found_message)
        logger.info("record_soft_deleted", table=model.__tablename__, record_id=record_id)


def require_owned(
    session: Session,
    store: SoftDeleteStore[ModelT],
    record_id: int,
    user_id: int,
    message: str,
) -> ModelT:
    """Resolve a record another entity links to on behalf of ``user_id``.

    Used when a write links to a provider or visit: the target must be active
    and owned by the acting user, otherwise the write fails with
    :class:`NotFoundError` carrying ``message``.
    """

    return store.find_active_by_id(session, record_id, message=message, user_id=user_id)


__all__ = ["SoftDeleteStore", "require_owned"]
