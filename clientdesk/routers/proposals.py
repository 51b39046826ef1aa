from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..crud.proposals import (
    create_proposal,
    get_proposal,
    list_proposals,
    restore_proposal,
    soft_delete_proposal,
    update_proposal,
)
from ..db.session import get_db
from ..deps.auth import AuthContext, require_admin, require_principal, require_writer
from ..schemas.proposal import ProposalCreate, ProposalOut, ProposalUpdate

router = APIRouter(prefix="/api/v1/proposals", tags=["proposals"], dependencies=[Depends(require_principal)])


def _load(db: Session, proposal_id: int, *, include_deleted: bool = False):
    proposal = get_proposal(db, proposal_id, include_deleted=include_deleted)
    if not proposal:
        raise HTTPException(404, "Not found")
    return proposal


@router.get("", response_model=list[ProposalOut])
def api_list_proposals(client_id: int | None = Query(None), db: Session = Depends(get_db)):
    return list_proposals(db, client_id=client_id)


@router.post("", response_model=ProposalOut, status_code=201)
def api_create_proposal(
    payload: ProposalCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_writer),
):
    try:
        return create_proposal(db, payload.model_dump(exclude_unset=True), created_by=auth.subject)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/{proposal_id}", response_model=ProposalOut)
def api_get_proposal(proposal_id: int, db: Session = Depends(get_db)):
    return _load(db, proposal_id)


@router.patch("/{proposal_id}", response_model=ProposalOut, dependencies=[Depends(require_writer)])
def api_update_proposal(proposal_id: int, payload: ProposalUpdate, db: Session = Depends(get_db)):
    proposal = _load(db, proposal_id)
    try:
        return update_proposal(db, proposal, payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.delete("/{proposal_id}", dependencies=[Depends(require_writer)])
def api_delete_proposal(proposal_id: int, db: Session = Depends(get_db)):
    proposal = soft_delete_proposal(db, _load(db, proposal_id))
    return {"status": "deleted", "id": proposal.id, "deleted_at": proposal.deleted_at}


@router.post("/{proposal_id}/restore", response_model=ProposalOut, dependencies=[Depends(require_admin)])
def api_restore_proposal(proposal_id: int, db: Session = Depends(get_db)):
    proposal = _load(db, proposal_id, include_deleted=True)
    try:
        return restore_proposal(db, proposal)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
