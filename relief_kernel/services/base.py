"""
BaseService -- abstract base for all module services.

Responsibility:
    Common constructor and session-handling contract.  Every service
    receives a SQLAlchemy ``Session`` and an injectable ``Clock`` and uses
    ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back.  The facade (``ReliefEngine``) owns
    commit / rollback, which is what makes each remote call atomic.
"""

from abc import ABC
from typing import TypeVar
from uuid import UUID

from sqlalchemy import Row, select
from sqlalchemy.orm import Session

from relief_kernel.db.base import Base
from relief_kernel.domain.clock import Clock, SystemClock
from relief_kernel.exceptions import NotFoundError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC):
    """
    Abstract base class for module services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _get_or_raise(
        self,
        model: type[ModelType],
        entity_id: UUID,
        entity_type: str,
        populate_existing: bool = False,
    ) -> ModelType:
        """``populate_existing`` overwrites a copy the session already holds."""
        entity = self.session.get(model, entity_id, populate_existing=populate_existing)
        if entity is None:
            raise NotFoundError(entity_type, str(entity_id))
        return entity

    def _columns_or_raise(
        self,
        model: type[ModelType],
        entity_id: UUID,
        entity_type: str,
        *columns,
    ) -> Row:
        """Read ``columns`` of one row without loading it into the session."""
        row = self.session.execute(select(*columns).where(model.id == entity_id)).first()
        if row is None:
            raise NotFoundError(entity_type, str(entity_id))
        return row
