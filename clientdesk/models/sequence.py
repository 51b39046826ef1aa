"""Per-namespace counter rows backing the code allocator."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, Integer, Text

from ..db.session import Base


class SequenceCounter(Base):
    """Highest value handed out for one namespace (``client``, ``invoice:2026``...).

    ``last_value`` only ever moves forward and is advanced with a
    compare-and-swap ``UPDATE`` so concurrent allocators cannot both claim
    the same number.
    """

    __tablename__ = "sequence_counters"
    __table_args__ = (
        CheckConstraint("last_value >= 0", name="ck_sequence_counters_last_value"),
        CheckConstraint("last_value <= max_value", name="ck_sequence_counters_ceiling"),
    )

    namespace = Column(Text, primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
    max_value = Column(Integer, nullable=False)
    updated_at = Column(Text, nullable=False)


__all__ = ["SequenceCounter"]
