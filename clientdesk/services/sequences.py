"""Sequential code allocation for clients, proposals and invoices.

Each namespace (``client``, ``proposal``, ``invoice``) owns a row in
``sequence_counters`` holding the highest value handed out so far. Values are
claimed with a compare-and-swap ``UPDATE``::

    UPDATE sequence_counters SET last_value = :next
    WHERE namespace = :ns AND last_value = :seen

so two request handlers that read the same snapshot can never both win the
same number: the loser sees ``rowcount == 0`` and reads again. The owning
column (``clients.client_code`` and friends) additionally carries a unique
constraint; :func:`create_with_code` turns a violation of it into
:class:`ConflictRetryable` and allocates again.

The counter is seeded from, and floored by, a scan of the owning column
(``max(code)``), which keeps imported or hand-edited codes from being issued a
second time.

:func:`next_code` never commits. A value becomes durable together with the
entity that carries it, when :func:`create_with_code` (or the caller) commits
that unit of work.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..core.logging import log_event
from ..models.bill import Bill
from ..models.client import Client
from ..models.proposal import Proposal
from ..models.sequence import SequenceCounter
from .exceptions import (
    AllocationContention,
    CodeConflict,
    ConflictRetryable,
    LimitExceeded,
    UnknownNamespace,
)

logger = logging.getLogger("clientdesk.sequences")

T = TypeVar("T")

PROPOSAL_NUMBER_RE = re.compile(r"^\d{4}-\d{3}$")
INVOICE_NUMBER_RE = re.compile(r"^INV-\d{4}-\d{3}$")


@dataclass(frozen=True)
class Namespace:
    """Static description of one code sequence."""

    name: str
    label: str
    model: type
    column_name: str
    max_setting: str
    # ``None`` stores the bare integer; otherwise the value is stored as
    # ``prefix + zero-padded number`` and the sequence restarts every year.
    prefix_template: str | None = None
    width: int = 3

    @property
    def yearly(self) -> bool:
        return self.prefix_template is not None

    @property
    def column(self):
        return getattr(self.model, self.column_name)

    @property
    def max_value(self) -> int:
        return int(getattr(get_settings(), self.max_setting))

    def key(self, year: int) -> str:
        return f"{self.name}:{year}" if self.yearly else self.name

    def prefix(self, year: int) -> str:
        return (self.prefix_template or "").format(year=year)

    def stored_value(self, value: int, year: int) -> int | str:
        if not self.yearly:
            return value
        return f"{self.prefix(year)}{value:0{self.width}d}"

    def display(self, value: int, year: int) -> str:
        if not self.yearly:
            return f"{value:0{self.width}d}"
        return str(self.stored_value(value, year))

    def parse(self, stored: Any, year: int) -> int | None:
        """Recover the sequence number from a stored column value."""

        if stored is None:
            return None
        if not self.yearly:
            return int(stored)
        prefix = self.prefix(year)
        text = str(stored)
        if not text.startswith(prefix):
            return None
        suffix = text[len(prefix):]
        return int(suffix) if suffix.isdigit() else None


NAMESPACES: dict[str, Namespace] = {
    "client": Namespace(
        name="client",
        label="client code",
        model=Client,
        column_name="client_code",
        max_setting="CLIENT_CODE_MAX",
    ),
    "proposal": Namespace(
        name="proposal",
        label="proposal number",
        model=Proposal,
        column_name="proposal_number",
        max_setting="PROPOSAL_NUMBER_MAX",
        prefix_template="{year}-",
    ),
    "invoice": Namespace(
        name="invoice",
        label="invoice number",
        model=Bill,
        column_name="invoice_number",
        max_setting="INVOICE_NUMBER_MAX",
        prefix_template="INV-{year}-",
    ),
}


@dataclass(frozen=True)
class SequenceState:
    namespace: str
    key: str
    last_issued: int | None
    max: int
    next: int | None
    exhausted: bool


def get_namespace(name: str) -> Namespace:
    try:
        return NAMESPACES[name]
    except KeyError:
        raise UnknownNamespace(name) from None


def current_year() -> int:
    tz_name = get_settings().TZ
    tz = timezone.utc
    if tz_name:
        try:
            tz = ZoneInfo(tz_name)
        except ZoneInfoNotFoundError:
            log_event(logger, "sequence.unknown_timezone", logging.WARNING, tz=tz_name)
    return datetime.now(tz).year


def _utcnow() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_code(namespace: str, value: int, year: int | None = None) -> str:
    """Human-facing form of a sequence number (``007``, ``INV-2026-007``)."""

    ns = get_namespace(namespace)
    return ns.display(value, year if year is not None else current_year())


def is_valid_proposal_number(value: str) -> bool:
    return bool(PROPOSAL_NUMBER_RE.match(value or ""))


def is_valid_invoice_number(value: str) -> bool:
    return bool(INVOICE_NUMBER_RE.match(value or ""))


def _scan_floor(db: Session, ns: Namespace, year: int) -> int:
    """Highest number already stored on the owning column (0 when none)."""

    column = ns.column
    stmt = select(column).where(column.is_not(None))
    if ns.yearly:
        stmt = stmt.where(column.startswith(ns.prefix(year)))
    stmt = stmt.order_by(column.desc()).limit(1)
    stored = db.execute(stmt).scalar()
    return ns.parse(stored, year) or 0


def _read_counter(db: Session, key: str) -> int | None:
    # Column select so the value never comes from the identity map.
    stmt = select(SequenceCounter.last_value).where(SequenceCounter.namespace == key)
    return db.execute(stmt).scalar()


def _insert_counter(db: Session, key: str, seed: int, ceiling: int) -> None:
    """Create the counter row unless a concurrent caller got there first."""

    values = {"namespace": key, "last_value": seed, "max_value": ceiling, "updated_at": _utcnow()}
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        try:
            with db.begin_nested():
                db.add(SequenceCounter(**values))
        except IntegrityError:
            log_event(logger, "sequence.counter_exists", logging.DEBUG, namespace=key)
        return
    db.execute(insert(SequenceCounter).values(**values).on_conflict_do_nothing(index_elements=["namespace"]))


def _compare_and_swap(db: Session, key: str, expected: int, new: int, ceiling: int) -> bool:
    """Move ``key`` from ``expected`` to ``new``; False if someone else moved it."""

    stmt = (
        update(SequenceCounter)
        .where(SequenceCounter.namespace == key, SequenceCounter.last_value == expected)
        .values(last_value=new, max_value=ceiling, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1


def _limit_exceeded(ns: Namespace, key: str, ceiling: int) -> LimitExceeded:
    log_event(logger, "sequence.limit_exceeded", logging.WARNING, namespace=key, max=ceiling)
    return LimitExceeded(key, ns.label, ceiling)


def next_code(db: Session, namespace: str, *, year: int | None = None) -> int:
    """Claim the next number in ``namespace``.

    Raises :class:`LimitExceeded` when the ceiling is reached (nothing is
    written in that case) and :class:`AllocationContention` when the
    compare-and-swap keeps losing to concurrent writers.
    """

    ns = get_namespace(namespace)
    year = year if year is not None else current_year()
    key = ns.key(year)
    ceiling = ns.max_value
    attempts = get_settings().SEQUENCE_CAS_ATTEMPTS

    for attempt in range(1, attempts + 1):
        floor = _scan_floor(db, ns, year)
        seen = _read_counter(db, key)
        if seen is None:
            if floor + 1 > ceiling:
                raise _limit_exceeded(ns, key, ceiling)
            _insert_counter(db, key, floor, ceiling)
            seen = _read_counter(db, key) or 0
        candidate = max(seen, floor) + 1
        if candidate > ceiling:
            raise _limit_exceeded(ns, key, ceiling)
        if _compare_and_swap(db, key, seen, candidate, ceiling):
            log_event(logger, "sequence.allocated", namespace=key, value=candidate, attempt=attempt)
            return candidate
        log_event(logger, "sequence.cas_retry", logging.DEBUG, namespace=key, seen=seen, attempt=attempt)

    raise AllocationContention(key, attempts)


def suggest_code(db: Session, namespace: str, *, year: int | None = None) -> int:
    """Preview the number :func:`next_code` would hand out, without claiming it."""

    ns = get_namespace(namespace)
    year = year if year is not None else current_year()
    key = ns.key(year)
    ceiling = ns.max_value
    candidate = max(_read_counter(db, key) or 0, _scan_floor(db, ns, year)) + 1
    if candidate > ceiling:
        raise _limit_exceeded(ns, key, ceiling)
    return candidate


def get_state(db: Session, namespace: str, *, year: int | None = None) -> SequenceState:
    ns = get_namespace(namespace)
    year = year if year is not None else current_year()
    key = ns.key(year)
    ceiling = ns.max_value
    last = max(_read_counter(db, key) or 0, _scan_floor(db, ns, year))
    exhausted = last >= ceiling
    return SequenceState(
        namespace=ns.name,
        key=key,
        last_issued=last or None,
        max=ceiling,
        next=None if exhausted else last + 1,
        exhausted=exhausted,
    )


def sync_counter(db: Session, namespace: str, *, year: int | None = None) -> SequenceState:
    """Raise the stored counter to the owning column's maximum and commit.

    Never lowers the counter: numbers handed out and later removed by a
    permanent delete stay retired.
    """

    ns = get_namespace(namespace)
    year = year if year is not None else current_year()
    key = ns.key(year)
    ceiling = ns.max_value
    floor = min(_scan_floor(db, ns, year), ceiling)
    seen = _read_counter(db, key)
    if seen is None:
        _insert_counter(db, key, floor, ceiling)
    elif floor > seen:
        _compare_and_swap(db, key, seen, floor, ceiling)
    db.commit()
    log_event(logger, "sequence.synced", namespace=key, floor=floor)
    return get_state(db, namespace, year=year)


def is_code_violation(exc: IntegrityError, column_name: str) -> bool:
    """True if ``exc`` is the unique constraint on ``column_name`` firing."""

    return column_name in str(getattr(exc, "orig", exc))


def commit_with_code(db: Session, ns: Namespace, value: int | str) -> None:
    """Commit the pending entity; a duplicate code becomes :class:`ConflictRetryable`."""

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if is_code_violation(exc, ns.column_name):
            raise ConflictRetryable(ns.name, value) from exc
        raise


def create_with_code(
    db: Session,
    namespace: str,
    build: Callable[[int | str], T],
    *,
    explicit: int | str | None = None,
    year: int | None = None,
) -> T:
    """Allocate a code, hand it to ``build`` and commit the resulting entity.

    ``build`` receives the stored form of the code and must add the new
    entity to ``db``. When the unique constraint on the owning column rejects
    the commit the whole unit of work is rolled back and retried with a fresh
    allocation, up to ``SEQUENCE_MAX_RETRIES`` times. An ``explicit`` code is
    never retried; a clash raises :class:`CodeConflict`.
    """

    ns = get_namespace(namespace)
    attempts = get_settings().SEQUENCE_MAX_RETRIES
    for attempt in range(1, attempts + 1):
        alloc_year = year if year is not None else current_year()
        if explicit is not None:
            value = explicit
        else:
            value = ns.stored_value(next_code(db, namespace, year=alloc_year), alloc_year)
        entity = build(value)
        try:
            commit_with_code(db, ns, value)
        except ConflictRetryable as exc:
            if explicit is not None:
                raise CodeConflict(ns.column_name, explicit) from exc
            log_event(
                logger,
                "sequence.conflict_retry",
                logging.WARNING,
                namespace=ns.name,
                value=value,
                attempt=attempt,
            )
            continue
        db.refresh(entity)
        return entity

    raise AllocationContention(ns.name, attempts)


__all__ = [
    "NAMESPACES",
    "Namespace",
    "SequenceState",
    "commit_with_code",
    "create_with_code",
    "current_year",
    "format_code",
    "get_namespace",
    "get_state",
    "is_valid_invoice_number",
    "is_valid_proposal_number",
    "next_code",
    "suggest_code",
    "sync_counter",
]
