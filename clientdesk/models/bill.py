"""SQLAlchemy model for invoices (called bills throughout the API)."""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Numeric, Text
from sqlalchemy.orm import relationship

from ..db.session import Base

BILL_STATUSES = ("DRAFT", "SUBMITTED", "PAID", "CANCELLED")


class Bill(Base):
    __tablename__ = "bills"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    proposal_id = Column(Integer, ForeignKey("proposals.id"), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(Text, nullable=False, default="DRAFT")
    # ``INV-YYYY-NNN``; sequence restarts every calendar year.
    invoice_number = Column(Text, nullable=False, unique=True, index=True)
    due_date = Column(Text, nullable=True)
    created_by = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)
    deleted_at = Column(Text, nullable=True)

    client = relationship("Client", back_populates="bills")
    proposal = relationship("Proposal", back_populates="bills")


__all__ = ["BILL_STATUSES", "Bill"]
