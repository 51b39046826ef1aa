from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class SequenceStateOut(BaseModel):
    namespace: str
    key: str
    last_issued: Optional[int] = None
    max: int
    next: Optional[int] = None
    next_display: Optional[str] = None
    exhausted: bool
