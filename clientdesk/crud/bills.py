"""CRUD helpers for invoices; numbers come from the yearly ``invoice`` sequence."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..core.logging import log_event
from ..models.bill import BILL_STATUSES, Bill
from ..services.exceptions import NotFound
from ..services.sequences import create_with_code, is_valid_invoice_number
from .clients import require_client
from .proposals import require_proposal

logger = logging.getLogger("clientdesk.crud.bills")


def _utcnow() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _explicit_number(value) -> str | None:
    number = (value or "").strip()
    if not number:
        return None
    if not is_valid_invoice_number(number) or number.endswith("-000"):
        raise ValueError("invoice_number must look like INV-YYYY-NNN")
    return number


def list_bills(
    db: Session,
    *,
    client_id: int | None = None,
    status: str | None = None,
    include_deleted: bool = False,
):
    stmt = select(Bill)
    if client_id is not None:
        stmt = stmt.where(Bill.client_id == client_id)
    if status:
        stmt = stmt.where(Bill.status == status.upper())
    if not include_deleted:
        stmt = stmt.where(Bill.deleted_at.is_(None))
    return db.execute(stmt.order_by(desc(Bill.invoice_number))).scalars().all()


def get_bill(db: Session, bill_id: int, *, include_deleted: bool = False) -> Bill | None:
    bill = db.get(Bill, bill_id)
    if bill is None or (bill.deleted_at and not include_deleted):
        return None
    return bill


def require_bill(db: Session, bill_id: int, *, include_deleted: bool = False) -> Bill:
    bill = get_bill(db, bill_id, include_deleted=include_deleted)
    if bill is None:
        raise NotFound(f"Invoice {bill_id} not found")
    return bill


def create_bill(
    db: Session,
    payload: dict,
    *,
    created_by: str | None = None,
    year: int | None = None,
) -> Bill:
    if payload.get("amount") is None:
        raise ValueError("amount is required")
    client = require_client(db, payload.get("client_id"))
    proposal_id = payload.get("proposal_id")
    if proposal_id is not None:
        proposal = require_proposal(db, proposal_id)
        if proposal.client_id != client.id:
            raise ValueError("proposal belongs to a different client")
    explicit = _explicit_number(payload.get("invoice_number"))
    now = _utcnow()

    def build(number) -> Bill:
        bill = Bill(
            client_id=client.id,
            proposal_id=proposal_id,
            amount=payload["amount"],
            status="DRAFT",
            invoice_number=number,
            due_date=(payload.get("due_date") or None),
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        db.add(bill)
        return bill

    bill = create_with_code(db, "invoice", build, explicit=explicit, year=year)
    log_event(logger, "invoice.created", bill_id=bill.id, invoice_number=bill.invoice_number)
    return bill


def update_bill(db: Session, bill: Bill, payload: dict) -> Bill:
    if "amount" in payload and payload["amount"] is not None:
        bill.amount = payload["amount"]
    if "due_date" in payload:
        bill.due_date = payload.get("due_date") or None
    if payload.get("status"):
        status = payload["status"].strip().upper()
        if status not in BILL_STATUSES:
            raise ValueError(f"status must be one of {', '.join(BILL_STATUSES)}")
        bill.status = status
    bill.updated_at = _utcnow()
    db.commit()
    db.refresh(bill)
    return bill


def soft_delete_bill(db: Session, bill: Bill) -> Bill:
    if bill.status == "PAID":
        raise ValueError("paid invoices cannot be deleted")
    bill.deleted_at = _utcnow()
    bill.updated_at = bill.deleted_at
    db.commit()
    db.refresh(bill)
    return bill


def restore_bill(db: Session, bill: Bill) -> Bill:
    if bill.deleted_at is None:
        raise ValueError(f"Invoice {bill.invoice_number} is not deleted")
    if bill.client is not None and bill.client.deleted_at is not None:
        raise ValueError("restore the client before restoring its invoices")
    bill.deleted_at = None
    bill.updated_at = _utcnow()
    db.commit()
    db.refresh(bill)
    return bill
