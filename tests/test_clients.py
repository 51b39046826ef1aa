"""Tests for client records: soft delete, restore, archive and deletion checks."""

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from clientdesk.crud.bills import create_bill, restore_bill, soft_delete_bill, update_bill
from clientdesk.crud.clients import (
    archive_client,
    create_client,
    deletion_blockers,
    get_client,
    list_clients,
    list_deleted_clients,
    permanently_delete_client,
    restore_client,
    soft_delete_client,
    update_client,
)
from clientdesk.crud.proposals import create_proposal, list_proposals, restore_proposal, soft_delete_proposal, update_proposal
from clientdesk.db.session import Base
from clientdesk.services.exceptions import CodeConflict, DeletionBlocked, NotFound

# Ensure models are registered so metadata tables are created
from clientdesk.models import bill as bill_model  # noqa: F401
from clientdesk.models import client as client_model  # noqa: F401
from clientdesk.models import proposal as proposal_model  # noqa: F401
from clientdesk.models import sequence as sequence_model  # noqa: F401


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def test_create_client_normalizes_payload(db_session):
    client = create_client(
        db_session,
        {"name": "  Acme Lda  ", "email": " ops@acme.pt ", "company": "   "},
        created_by="ui:ana",
    )
    assert client.name == "Acme Lda"
    assert client.email == "ops@acme.pt"
    assert client.company is None
    assert client.created_by == "ui:ana"
    assert client.created_at == client.updated_at


def test_create_client_requires_name_and_valid_email(db_session):
    with pytest.raises(ValueError):
        create_client(db_session, {"name": "   "})
    with pytest.raises(ValueError):
        create_client(db_session, {"name": "Acme", "email": "not-an-email"})


def test_update_client_keeps_code(db_session):
    client = create_client(db_session, {"name": "Acme"})
    updated = update_client(db_session, client, {"name": "Acme Holdings", "contact_info": "+351 210 000 000"})
    assert updated.name == "Acme Holdings"
    assert updated.contact_info == "+351 210 000 000"
    assert updated.client_code == 1


def test_soft_delete_and_restore_round_trip(db_session):
    client = create_client(db_session, {"name": "Acme"})
    soft_delete_client(db_session, client)

    assert get_client(db_session, client.id) is None
    assert client.id not in [c.id for c in list_clients(db_session)]
    assert [c.id for c in list_deleted_clients(db_session)] == [client.id]

    restore_client(db_session, client)
    assert get_client(db_session, client.id) is not None
    assert client.deleted_at is None
    assert client.client_code == 1


def test_archived_clients_hidden_by_default(db_session):
    client = create_client(db_session, {"name": "Dormant"})
    archive_client(db_session, client)

    assert client.id not in [c.id for c in list_clients(db_session)]
    assert client.id in [c.id for c in list_clients(db_session, include_archived=True)]


def test_delete_blocked_by_open_work(db_session):
    client = create_client(db_session, {"name": "Busy"})
    proposal = create_proposal(db_session, {"client_id": client.id, "title": "Audit"}, year=2026)
    bill = create_bill(db_session, {"client_id": client.id, "amount": 250}, year=2026)

    assert deletion_blockers(db_session, client) == {"open_proposals": 1, "open_invoices": 1}
    with pytest.raises(DeletionBlocked) as excinfo:
        soft_delete_client(db_session, client)
    assert "1 open invoice(s)" in str(excinfo.value)
    assert "Please archive instead" in str(excinfo.value)

    update_bill(db_session, bill, {"status": "PAID"})
    update_proposal(db_session, proposal, {"status": "APPROVED"})
    assert deletion_blockers(db_session, client) == {"open_proposals": 0, "open_invoices": 0}
    soft_delete_client(db_session, client)
    assert client.deleted_at is not None


def test_permanent_delete_requires_soft_delete_first(db_session):
    client = create_client(db_session, {"name": "Acme"})
    with pytest.raises(ValueError):
        permanently_delete_client(db_session, client)

    soft_delete_client(db_session, client)
    permanently_delete_client(db_session, client)
    assert get_client(db_session, client.id, include_deleted=True) is None


def test_permanent_delete_refused_when_invoices_exist(db_session):
    client = create_client(db_session, {"name": "Acme"})
    bill = create_bill(db_session, {"client_id": client.id, "amount": 10}, year=2026)
    update_bill(db_session, bill, {"status": "CANCELLED"})
    soft_delete_bill(db_session, bill)
    soft_delete_client(db_session, client)

    with pytest.raises(DeletionBlocked):
        permanently_delete_client(db_session, client)


def test_proposal_soft_delete_and_restore(db_session):
    client = create_client(db_session, {"name": "Acme"})
    proposal = create_proposal(db_session, {"client_id": client.id, "title": "Audit"}, year=2026)

    soft_delete_proposal(db_session, proposal)
    assert list_proposals(db_session, client_id=client.id) == []

    restore_proposal(db_session, proposal)
    assert [p.proposal_number for p in list_proposals(db_session, client_id=client.id)] == ["2026-001"]


def test_paid_bill_cannot_be_deleted(db_session):
    client = create_client(db_session, {"name": "Acme"})
    bill = create_bill(db_session, {"client_id": client.id, "amount": 10}, year=2026)
    update_bill(db_session, bill, {"status": "paid"})

    with pytest.raises(ValueError):
        soft_delete_bill(db_session, bill)


def test_bill_for_missing_client(db_session):
    with pytest.raises(NotFound):
        create_bill(db_session, {"client_id": 404, "amount": 10}, year=2026)


def test_cancelled_invoice_still_blocks_delete(db_session):
    client = create_client(db_session, {"name": "Acme"})
    bill = create_bill(db_session, {"client_id": client.id, "amount": 10}, year=2026)
    update_bill(db_session, bill, {"status": "CANCELLED"})

    assert deletion_blockers(db_session, client) == {"open_proposals": 0, "open_invoices": 1}
    with pytest.raises(DeletionBlocked) as excinfo:
        soft_delete_client(db_session, client)
    assert "1 open invoice(s)" in str(excinfo.value)


def test_restore_requires_deleted_record(db_session):
    client = create_client(db_session, {"name": "Acme"})
    proposal = create_proposal(db_session, {"client_id": client.id, "title": "Audit"}, year=2026)
    bill = create_bill(db_session, {"client_id": client.id, "amount": 10}, year=2026)

    with pytest.raises(ValueError, match="is not deleted"):
        restore_client(db_session, client)
    with pytest.raises(ValueError, match="is not deleted"):
        restore_proposal(db_session, proposal)
    with pytest.raises(ValueError, match="is not deleted"):
        restore_bill(db_session, bill)


def test_restore_keeps_archive_state(db_session):
    client = create_client(db_session, {"name": "Dormant"})
    archive_client(db_session, client)
    archived_at = client.archived_at
    soft_delete_client(db_session, client)

    restore_client(db_session, client)
    assert client.deleted_at is None
    assert client.archived_at == archived_at
    assert client.id not in [c.id for c in list_clients(db_session)]


def test_proposal_with_explicit_number(db_session):
    client = create_client(db_session, {"name": "Acme"})
    proposal = create_proposal(
        db_session, {"client_id": client.id, "title": "Imported", "proposal_number": "2026-040"}, year=2026
    )
    assert proposal.proposal_number == "2026-040"

    generated = create_proposal(db_session, {"client_id": client.id, "title": "Next"}, year=2026)
    assert generated.proposal_number == "2026-041"


def test_proposal_number_format_is_checked(db_session):
    client = create_client(db_session, {"name": "Acme"})
    for bad in ("2026-40", "P-2026-040", "2026-000"):
        with pytest.raises(ValueError):
            create_proposal(db_session, {"client_id": client.id, "title": "Bad", "proposal_number": bad}, year=2026)


def test_duplicate_explicit_proposal_number_conflicts(db_session):
    client = create_client(db_session, {"name": "Acme"})
    create_proposal(db_session, {"client_id": client.id, "title": "First"}, year=2026)

    with pytest.raises(CodeConflict):
        create_proposal(
            db_session, {"client_id": client.id, "title": "Copy", "proposal_number": "2026-001"}, year=2026
        )
    assert [p.title for p in list_proposals(db_session, client_id=client.id)] == ["First"]


def test_bill_with_explicit_invoice_number(db_session):
    client = create_client(db_session, {"name": "Acme"})
    bill = create_bill(db_session, {"client_id": client.id, "amount": 10, "invoice_number": "INV-2026-007"}, year=2026)
    assert bill.invoice_number == "INV-2026-007"

    with pytest.raises(ValueError):
        create_bill(db_session, {"client_id": client.id, "amount": 10, "invoice_number": "2026-008"}, year=2026)
    with pytest.raises(CodeConflict):
        create_bill(db_session, {"client_id": client.id, "amount": 10, "invoice_number": "INV-2026-007"}, year=2026)
