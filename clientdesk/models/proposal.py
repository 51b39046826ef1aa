"""SQLAlchemy model for fee proposals sent to clients."""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Numeric, Text
from sqlalchemy.orm import relationship

from ..db.session import Base

PROPOSAL_STATUSES = ("DRAFT", "SUBMITTED", "APPROVED", "REJECTED")
OPEN_PROPOSAL_STATUSES = ("DRAFT", "SUBMITTED")


class Proposal(Base):
    __tablename__ = "proposals"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    amount = Column(Numeric(12, 2), nullable=True)
    status = Column(Text, nullable=False, default="DRAFT")
    # ``YYYY-NNN``; sequence restarts every calendar year.
    proposal_number = Column(Text, nullable=False, unique=True, index=True)
    created_by = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)
    deleted_at = Column(Text, nullable=True)

    client = relationship("Client", back_populates="proposals")
    bills = relationship("Bill", back_populates="proposal")


__all__ = ["OPEN_PROPOSAL_STATUSES", "PROPOSAL_STATUSES", "Proposal"]
