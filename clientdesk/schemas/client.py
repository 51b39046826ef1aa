"""Pydantic schemas that describe client payloads for the API."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, computed_field


class ClientBase(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    company: Optional[str] = None
    contact_info: Optional[str] = None
    is_individual: bool = False


class ClientCreate(ClientBase):
    # Usually omitted; the next free code is allocated.
    client_code: Optional[int] = Field(default=None, ge=1)


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    company: Optional[str] = None
    contact_info: Optional[str] = None
    is_individual: Optional[bool] = None


class ClientOut(ClientBase):
    id: int
    client_code: Optional[int] = None
    created_by: Optional[str] = None
    created_at: str
    updated_at: str
    archived_at: Optional[str] = None
    deleted_at: Optional[str] = None

    model_config = {"from_attributes": True}

    @computed_field  # type: ignore[misc]
    @property
    def client_code_display(self) -> Optional[str]:
        return f"{self.client_code:03d}" if self.client_code is not None else None


class SuggestedCode(BaseModel):
    suggested_code: int = Field(..., alias="suggestedCode")
    display: str

    model_config = {"populate_by_name": True}
