"""CRUD helpers for proposals; numbers come from the yearly ``proposal`` sequence."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..core.logging import log_event
from ..models.proposal import PROPOSAL_STATUSES, Proposal
from ..services.exceptions import DeletionBlocked, NotFound
from ..services.sequences import create_with_code, is_valid_proposal_number
from .clients import require_client

logger = logging.getLogger("clientdesk.crud.proposals")


def _utcnow() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _explicit_number(value) -> str | None:
    number = (value or "").strip()
    if not number:
        return None
    if not is_valid_proposal_number(number) or number.endswith("-000"):
        raise ValueError("proposal_number must look like YYYY-NNN")
    return number


def _status(value) -> str:
    status = (value or "DRAFT").strip().upper()
    if status not in PROPOSAL_STATUSES:
        raise ValueError(f"status must be one of {', '.join(PROPOSAL_STATUSES)}")
    return status


def list_proposals(db: Session, *, client_id: int | None = None, include_deleted: bool = False):
    stmt = select(Proposal)
    if client_id is not None:
        stmt = stmt.where(Proposal.client_id == client_id)
    if not include_deleted:
        stmt = stmt.where(Proposal.deleted_at.is_(None))
    return db.execute(stmt.order_by(desc(Proposal.proposal_number))).scalars().all()


def get_proposal(db: Session, proposal_id: int, *, include_deleted: bool = False) -> Proposal | None:
    proposal = db.get(Proposal, proposal_id)
    if proposal is None or (proposal.deleted_at and not include_deleted):
        return None
    return proposal


def require_proposal(db: Session, proposal_id: int, *, include_deleted: bool = False) -> Proposal:
    proposal = get_proposal(db, proposal_id, include_deleted=include_deleted)
    if proposal is None:
        raise NotFound(f"Proposal {proposal_id} not found")
    return proposal


def create_proposal(
    db: Session,
    payload: dict,
    *,
    created_by: str | None = None,
    year: int | None = None,
) -> Proposal:
    title = (payload.get("title") or "").strip()
    if not title:
        raise ValueError("title is required")
    client = require_client(db, payload.get("client_id"))
    explicit = _explicit_number(payload.get("proposal_number"))
    now = _utcnow()

    def build(number) -> Proposal:
        proposal = Proposal(
            client_id=client.id,
            title=title,
            amount=payload.get("amount"),
            status="DRAFT",
            proposal_number=number,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        db.add(proposal)
        return proposal

    proposal = create_with_code(db, "proposal", build, explicit=explicit, year=year)
    log_event(logger, "proposal.created", proposal_id=proposal.id, proposal_number=proposal.proposal_number)
    return proposal


def update_proposal(db: Session, proposal: Proposal, payload: dict) -> Proposal:
    if "title" in payload:
        title = (payload.get("title") or "").strip()
        if not title:
            raise ValueError("title is required")
        proposal.title = title
    if "amount" in payload:
        proposal.amount = payload.get("amount")
    if payload.get("status"):
        proposal.status = _status(payload["status"])
    proposal.updated_at = _utcnow()
    db.commit()
    db.refresh(proposal)
    return proposal


def soft_delete_proposal(db: Session, proposal: Proposal) -> Proposal:
    live_bills = [bill for bill in proposal.bills or [] if bill.deleted_at is None]
    if live_bills:
        raise DeletionBlocked(
            f"Cannot delete proposal with {len(live_bills)} invoice(s).",
            {"invoices": len(live_bills)},
        )
    proposal.deleted_at = _utcnow()
    proposal.updated_at = proposal.deleted_at
    db.commit()
    db.refresh(proposal)
    return proposal


def restore_proposal(db: Session, proposal: Proposal) -> Proposal:
    if proposal.deleted_at is None:
        raise ValueError(f"Proposal {proposal.proposal_number} is not deleted")
    if proposal.client is not None and proposal.client.deleted_at is not None:
        raise ValueError("restore the client before restoring its proposals")
    proposal.deleted_at = None
    proposal.updated_at = _utcnow()
    db.commit()
    db.refresh(proposal)
    return proposal
