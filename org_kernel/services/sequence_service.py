"""
Module: org_kernel.services.sequence_service
Responsibility: Gap-safe, strictly monotonic named counters backed by a
    locked row in ``sequence_counters``.
Architecture position: Kernel > Services.  Called by the change request
    workflow (per-year request numbers), the approval recorder and the change
    log recorder (ordering seq).

Invariants enforced:
    - Values come from an increment on a row held with ``SELECT ... FOR
      UPDATE``.  Concurrent allocations for the same name serialize on that
      row; reading the highest existing value and adding one is never used
      for allocation.
    - A value is only consumed when the caller's transaction commits.

Failure modes:
    - IntegrityError on the counter insert when two sessions create the same
      counter at once is absorbed by a SAVEPOINT and retried as a locked read.
"""

from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from org_kernel.logging_config import get_logger
from org_kernel.models.sequence_counter import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Transactional sequence numbers.

    Contract:
        ``next_value(name)`` returns an integer strictly greater than any
        value previously returned for ``name`` in committed transactions.

    Non-goals:
        Does NOT call ``session.commit()``; the caller owns the transaction.

    Usage:
        seq = SequenceService(session).next_value("structure_approval")
    """

    STRUCTURE_APPROVAL = "structure_approval"
    STRUCTURE_CHANGE_LOG = "structure_change_log"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(
        self,
        sequence_name: str,
        seed: Callable[[], int] | None = None,
    ) -> int:
        """
        Lock, increment and return the named counter.

        Args:
            sequence_name: Counter name, e.g. ``structure_change_request:2026``.
            seed: Called only when the counter does not exist yet; returns the
                value the counter should start from (the next value handed
                out is ``seed() + 1``).  Lets a new counter continue after
                numbers that were issued before it existed.
        """
        if not sequence_name:
            raise ValueError("sequence_name must be non-empty")

        counter = self._locked_counter(sequence_name)

        if counter is None:
            start = seed() if seed is not None else 0
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=start + 1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": counter.current_value},
                )
                return counter.current_value
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing; None if the counter does not exist."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.name == sequence_name
            )
        ).scalar_one_or_none()
