"""CRUD helpers for clients, including code allocation and soft delete."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..core.logging import log_event
from ..models.bill import Bill
from ..models.client import Client
from ..models.proposal import OPEN_PROPOSAL_STATUSES, Proposal
from ..services.exceptions import CodeConflict, DeletionBlocked, NotFound
from ..services.sequences import create_with_code

logger = logging.getLogger("clientdesk.crud.clients")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _utcnow() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _clean_text(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _clean_email(value) -> str | None:
    email = _clean_text(value)
    if email and not EMAIL_RE.match(email):
        raise ValueError("email is not a valid address")
    return email


def list_clients(
    db: Session,
    *,
    include_archived: bool = False,
    include_deleted: bool = False,
    limit: int = 200,
    offset: int = 0,
):
    stmt = select(Client)
    if not include_deleted:
        stmt = stmt.where(Client.deleted_at.is_(None))
    if not include_archived:
        stmt = stmt.where(Client.archived_at.is_(None))
    stmt = stmt.order_by(desc(Client.created_at), desc(Client.id)).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


def list_deleted_clients(db: Session):
    stmt = select(Client).where(Client.deleted_at.is_not(None)).order_by(desc(Client.deleted_at))
    return db.execute(stmt).scalars().all()


def get_client(db: Session, client_id: int, *, include_deleted: bool = False) -> Client | None:
    client = db.get(Client, client_id)
    if client is None or (client.deleted_at and not include_deleted):
        return None
    return client


def get_client_by_code(db: Session, client_code: int) -> Client | None:
    stmt = select(Client).where(Client.client_code == client_code)
    return db.execute(stmt).scalars().first()


def _validate_explicit_code(db: Session, value) -> int | None:
    if value in (None, ""):
        return None
    code = int(value)
    ceiling = get_settings().CLIENT_CODE_MAX
    if code < 1 or code > ceiling:
        raise ValueError(f"client_code must be between 1 and {ceiling}")
    if get_client_by_code(db, code) is not None:
        raise CodeConflict("client_code", code)
    return code


def create_client(db: Session, payload: dict, *, created_by: str | None = None) -> Client:
    """Create a client, allocating the next ``client_code`` unless one is given."""

    name = _clean_text(payload.get("name"))
    if not name:
        raise ValueError("name is required")
    email = _clean_email(payload.get("email"))
    explicit = _validate_explicit_code(db, payload.get("client_code"))
    now = _utcnow()

    def build(code) -> Client:
        client = Client(
            name=name,
            email=email,
            company=_clean_text(payload.get("company")),
            contact_info=_clean_text(payload.get("contact_info")),
            is_individual=bool(payload.get("is_individual") or False),
            client_code=code,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        db.add(client)
        return client

    client = create_with_code(db, "client", build, explicit=explicit)
    log_event(logger, "client.created", client_id=client.id, client_code=client.client_code)
    return client


def update_client(db: Session, client: Client, payload: dict) -> Client:
    if "name" in payload:
        name = _clean_text(payload.get("name"))
        if not name:
            raise ValueError("name is required")
        client.name = name
    if "email" in payload:
        client.email = _clean_email(payload.get("email"))
    for field in ("company", "contact_info"):
        if field in payload:
            setattr(client, field, _clean_text(payload.get(field)))
    if "is_individual" in payload and payload["is_individual"] is not None:
        client.is_individual = bool(payload["is_individual"])
    client.updated_at = _utcnow()
    db.commit()
    db.refresh(client)
    return client


def deletion_blockers(db: Session, client: Client) -> dict[str, int]:
    """Count open work that stops a client from being deleted."""

    open_proposals = db.scalar(
        select(func.count())
        .select_from(Proposal)
        .where(
            Proposal.client_id == client.id,
            Proposal.deleted_at.is_(None),
            Proposal.status.in_(OPEN_PROPOSAL_STATUSES),
        )
    ) or 0
    open_bills = db.scalar(
        select(func.count())
        .select_from(Bill)
        .where(
            Bill.client_id == client.id,
            Bill.deleted_at.is_(None),
            Bill.status != "PAID",
        )
    ) or 0
    return {"open_proposals": open_proposals, "open_invoices": open_bills}


def _ensure_deletable(db: Session, client: Client) -> None:
    blockers = deletion_blockers(db, client)
    if not any(blockers.values()):
        return
    reasons = []
    if blockers["open_invoices"]:
        reasons.append(f"{blockers['open_invoices']} open invoice(s)")
    if blockers["open_proposals"]:
        reasons.append(f"{blockers['open_proposals']} open proposal(s)")
    raise DeletionBlocked(
        f"Cannot delete client with {', '.join(reasons)}. Please archive instead.",
        blockers,
    )


def archive_client(db: Session, client: Client) -> Client:
    client.archived_at = client.archived_at or _utcnow()
    client.updated_at = _utcnow()
    db.commit()
    db.refresh(client)
    return client


def soft_delete_client(db: Session, client: Client) -> Client:
    _ensure_deletable(db, client)
    client.deleted_at = _utcnow()
    client.updated_at = client.deleted_at
    db.commit()
    db.refresh(client)
    log_event(logger, "client.deleted", client_id=client.id)
    return client


def restore_client(db: Session, client: Client) -> Client:
    if client.deleted_at is None:
        raise ValueError(f"Client {client.name} is not deleted")
    client.deleted_at = None
    client.updated_at = _utcnow()
    db.commit()
    db.refresh(client)
    log_event(logger, "client.restored", client_id=client.id)
    return client


def permanently_delete_client(db: Session, client: Client) -> None:
    """Remove a soft-deleted client for good. Its code is never reissued."""

    if client.deleted_at is None:
        raise ValueError("client must be deleted before it can be removed permanently")
    if db.scalar(select(func.count()).select_from(Bill).where(Bill.client_id == client.id)):
        raise DeletionBlocked("Cannot permanently delete a client that has invoices.")
    client_id, client_code = client.id, client.client_code
    for proposal in list(client.proposals or []):
        db.delete(proposal)
    db.delete(client)
    db.commit()
    log_event(logger, "client.purged", client_id=client_id, client_code=client_code)


def require_client(db: Session, client_id: int | None, *, include_deleted: bool = False) -> Client:
    if client_id is None:
        raise ValueError("client_id is required")
    client = get_client(db, client_id, include_deleted=include_deleted)
    if client is None:
        raise NotFound(f"Client {client_id} not found")
    return client
