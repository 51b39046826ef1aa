from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..crud.clients import (
    archive_client,
    create_client,
    get_client,
    list_clients,
    list_deleted_clients,
    permanently_delete_client,
    restore_client,
    soft_delete_client,
    update_client,
)
from ..db.session import get_db
from ..deps.auth import AuthContext, require_admin, require_principal, require_writer
from ..schemas.client import ClientCreate, ClientOut, ClientUpdate, SuggestedCode
from ..services.sequences import format_code, suggest_code

router = APIRouter(prefix="/api/v1/clients", tags=["clients"], dependencies=[Depends(require_principal)])


def _load(db: Session, client_id: int, *, include_deleted: bool = False):
    client = get_client(db, client_id, include_deleted=include_deleted)
    if not client:
        raise HTTPException(404, "Not found")
    return client


@router.get("", response_model=list[ClientOut])
def api_list_clients(
    include_archived: bool = Query(False),
    limit: int = Query(200, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return list_clients(db, include_archived=include_archived, limit=limit, offset=offset)


@router.get("/suggested-code", response_model=SuggestedCode, dependencies=[Depends(require_writer)])
def api_suggested_code(db: Session = Depends(get_db)):
    code = suggest_code(db, "client")
    return SuggestedCode(suggested_code=code, display=format_code("client", code))


@router.get("/junkbox", response_model=list[ClientOut], dependencies=[Depends(require_admin)])
def api_list_deleted_clients(db: Session = Depends(get_db)):
    return list_deleted_clients(db)


@router.post("", response_model=ClientOut, status_code=201)
def api_create_client(
    payload: ClientCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_writer),
):
    try:
        return create_client(db, payload.model_dump(exclude_unset=True), created_by=auth.subject)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/{client_id}", response_model=ClientOut)
def api_get_client(client_id: int, db: Session = Depends(get_db)):
    return _load(db, client_id)


@router.patch("/{client_id}", response_model=ClientOut, dependencies=[Depends(require_writer)])
def api_update_client(client_id: int, payload: ClientUpdate, db: Session = Depends(get_db)):
    client = _load(db, client_id)
    try:
        return update_client(db, client, payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.post("/{client_id}/archive", response_model=ClientOut, dependencies=[Depends(require_writer)])
def api_archive_client(client_id: int, db: Session = Depends(get_db)):
    return archive_client(db, _load(db, client_id))


@router.delete("/{client_id}", dependencies=[Depends(require_writer)])
def api_delete_client(client_id: int, db: Session = Depends(get_db)):
    client = soft_delete_client(db, _load(db, client_id))
    return {"status": "deleted", "id": client.id, "deleted_at": client.deleted_at}


@router.post("/{client_id}/restore", response_model=ClientOut, dependencies=[Depends(require_admin)])
def api_restore_client(client_id: int, db: Session = Depends(get_db)):
    client = _load(db, client_id, include_deleted=True)
    try:
        return restore_client(db, client)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.delete("/{client_id}/permanent", dependencies=[Depends(require_admin)])
def api_permanently_delete_client(client_id: int, db: Session = Depends(get_db)):
    client = _load(db, client_id, include_deleted=True)
    try:
        permanently_delete_client(db, client)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"status": "purged", "id": client_id}
