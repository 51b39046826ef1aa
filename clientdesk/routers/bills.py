from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..crud.bills import create_bill, get_bill, list_bills, restore_bill, soft_delete_bill, update_bill
from ..db.session import get_db
from ..deps.auth import AuthContext, require_admin, require_principal, require_writer
from ..schemas.bill import BillCreate, BillOut, BillUpdate

router = APIRouter(prefix="/api/v1/bills", tags=["bills"], dependencies=[Depends(require_principal)])


def _load(db: Session, bill_id: int, *, include_deleted: bool = False):
    bill = get_bill(db, bill_id, include_deleted=include_deleted)
    if not bill:
        raise HTTPException(404, "Not found")
    return bill


@router.get("", response_model=list[BillOut])
def api_list_bills(
    client_id: int | None = Query(None),
    status: str | None = Query(None),
    db: Session = Depends(get_db),
):
    return list_bills(db, client_id=client_id, status=status)


@router.post("", response_model=BillOut, status_code=201)
def api_create_bill(
    payload: BillCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_writer),
):
    try:
        return create_bill(db, payload.model_dump(exclude_unset=True), created_by=auth.subject)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/{bill_id}", response_model=BillOut)
def api_get_bill(bill_id: int, db: Session = Depends(get_db)):
    return _load(db, bill_id)


@router.patch("/{bill_id}", response_model=BillOut, dependencies=[Depends(require_writer)])
def api_update_bill(bill_id: int, payload: BillUpdate, db: Session = Depends(get_db)):
    bill = _load(db, bill_id)
    try:
        return update_bill(db, bill, payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.delete("/{bill_id}", dependencies=[Depends(require_writer)])
def api_delete_bill(bill_id: int, db: Session = Depends(get_db)):
    bill = _load(db, bill_id)
    try:
        bill = soft_delete_bill(db, bill)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"status": "deleted", "id": bill.id, "deleted_at": bill.deleted_at}


@router.post("/{bill_id}/restore", response_model=BillOut, dependencies=[Depends(require_admin)])
def api_restore_bill(bill_id: int, db: Session = Depends(get_db)):
    bill = _load(db, bill_id, include_deleted=True)
    try:
        return restore_bill(db, bill)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
