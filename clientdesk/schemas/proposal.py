from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

ProposalStatus = Literal["DRAFT", "SUBMITTED", "APPROVED", "REJECTED"]


class ProposalCreate(BaseModel):
    client_id: int
    title: str = Field(..., min_length=1)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    # Generated from the yearly sequence when omitted.
    proposal_number: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{3}$")


class ProposalUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    status: Optional[ProposalStatus] = None


class ProposalOut(BaseModel):
    id: int
    client_id: int
    title: str
    amount: Optional[Decimal] = None
    status: str
    proposal_number: str
    created_by: Optional[str] = None
    created_at: str
    updated_at: str
    deleted_at: Optional[str] = None

    model_config = {"from_attributes": True}
