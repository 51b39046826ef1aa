"""SQLAlchemy model for clients, the owners of the ``client`` code sequence."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class Client(Base):
    """A billed customer. ``client_code`` is unique across live and deleted rows."""

    __tablename__ = "clients"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    company = Column(Text, nullable=True)
    contact_info = Column(Text, nullable=True)
    is_individual = Column(Boolean, nullable=False, default=False)
    client_code = Column(Integer, nullable=True, unique=True, index=True)
    created_by = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)
    archived_at = Column(Text, nullable=True)
    deleted_at = Column(Text, nullable=True)

    proposals = relationship("Proposal", back_populates="client")
    bills = relationship("Bill", back_populates="client")


__all__ = ["Client"]
