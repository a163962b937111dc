"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session contract.  Services persist with
    ``session.flush()`` inside the caller's transaction; they never commit
    or roll back the outer transaction.

Invariants enforced:
    - Unique-key violations raised at flush are translated into the
      matching ConflictError.  The insert runs inside a SAVEPOINT so the
      caller's transaction stays usable after the conflict.
"""

from abc import ABC
from typing import Callable, Generic, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from org_kernel.db.base import Base
from org_kernel.domain.clock import Clock, SystemClock
from org_kernel.exceptions import ConflictError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT hold read-only listing queries; those live in selectors/.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _flush_unique(
        self,
        conflict: Callable[[], ConflictError],
        instance: Base | None = None,
    ) -> None:
        """
        Flush (optionally adding ``instance`` first) inside a SAVEPOINT.

        An IntegrityError from the flush is re-raised as ``conflict()``.
        """
        savepoint = self.session.begin_nested()
        try:
            if instance is not None:
                self.session.add(instance)
            self.session.flush()
        except IntegrityError as exc:
            savepoint.rollback()
            raise conflict() from exc
        savepoint.commit()
