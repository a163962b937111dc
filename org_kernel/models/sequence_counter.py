"""
Module: org_kernel.models.sequence_counter
Responsibility: Named monotonic counters (request numbers, approval and
    change-log ordering).  Allocation happens in services/sequence_service.py
    under a row lock; this module only defines the table.
"""

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from org_kernel.db.base import Base


class SequenceCounter(Base):
    """One row per named sequence; ``current_value`` is the last value handed out."""

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("name", name="uq_sequence_counter_name"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
