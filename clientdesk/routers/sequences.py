from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db.session import get_db
from ..deps.auth import require_admin, require_writer
from ..schemas.sequence import SequenceStateOut
from ..services.sequences import SequenceState, current_year, format_code, get_state, sync_counter

router = APIRouter(prefix="/api/v1/sequences", tags=["sequences"], dependencies=[Depends(require_writer)])


def _state_to_schema(state: SequenceState, year: int) -> SequenceStateOut:
    next_display = format_code(state.namespace, state.next, year) if state.next is not None else None
    return SequenceStateOut(
        namespace=state.namespace,
        key=state.key,
        last_issued=state.last_issued,
        max=state.max,
        next=state.next,
        next_display=next_display,
        exhausted=state.exhausted,
    )


@router.get("/{namespace}", response_model=SequenceStateOut)
def api_get_sequence(
    namespace: str,
    year: int | None = Query(None, ge=2000, le=9999),
    db: Session = Depends(get_db),
):
    year = year or current_year()
    return _state_to_schema(get_state(db, namespace, year=year), year)


@router.post("/{namespace}/sync", response_model=SequenceStateOut, dependencies=[Depends(require_admin)])
def api_sync_sequence(
    namespace: str,
    year: int | None = Query(None, ge=2000, le=9999),
    db: Session = Depends(get_db),
):
    year = year or current_year()
    return _state_to_schema(sync_counter(db, namespace, year=year), year)
