from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

BillStatus = Literal["DRAFT", "SUBMITTED", "PAID", "CANCELLED"]


class BillCreate(BaseModel):
    client_id: int
    proposal_id: Optional[int] = None
    amount: Decimal = Field(..., ge=0)
    due_date: Optional[str] = None
    invoice_number: Optional[str] = Field(default=None, pattern=r"^INV-\d{4}-\d{3}$")


class BillUpdate(BaseModel):
    amount: Optional[Decimal] = Field(default=None, ge=0)
    status: Optional[BillStatus] = None
    due_date: Optional[str] = None


class BillOut(BaseModel):
    id: int
    client_id: int
    proposal_id: Optional[int] = None
    amount: Decimal
    status: str
    invoice_number: str
    due_date: Optional[str] = None
    created_by: Optional[str] = None
    created_at: str
    updated_at: str
    deleted_at: Optional[str] = None

    model_config = {"from_attributes": True}
