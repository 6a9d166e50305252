# Overview: Day-scoped human-readable document numbers (ORD-/SALE-YYYYMMDD-NNNN).

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ConcurrencyConflict
from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import business_date

ORDER_SEQUENCE = ("ORDER", "ORD")
SALE_SEQUENCE = ("SALE", "SALE")


class NumberingError(Exception):
    """Raised when document sequence operations fail."""
    pass


def current_business_date() -> date:
    return business_date(current_app.config.get("BUSINESS_TIMEZONE", "UTC"))


def next_sequence_number(
    *,
    document_type: str,
    prefix: str,
    on_date: date | None = None,
    pad: int = 4,
) -> str:
    """
    Allocate the next number for (document_type, business day).

    The counter row is advanced with a single UPDATE, so two creators can
    never read the same value. The first allocation of a day inserts the
    row; losing that insert race raises ConcurrencyConflict, which the
    surrounding run_in_transaction retries.

    Runs inside the caller's transaction and never commits.
    """
    if not document_type:
        raise NumberingError("document_type is required")
    if not prefix:
        raise NumberingError("prefix is required")

    day = on_date or current_business_date()

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.sequence_date == day,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, sequence_date=day)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(DocumentSequence(document_type=document_type, sequence_date=day, next_number=2))
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflict(f"{document_type} sequence for {day} was created concurrently") from exc
        number = 1

    return f"{prefix}-{day:%Y%m%d}-{number:0{pad}d}"


def next_order_number(on_date: date | None = None) -> str:
    document_type, prefix = ORDER_SEQUENCE
    return next_sequence_number(document_type=document_type, prefix=prefix, on_date=on_date)


def next_sale_number(on_date: date | None = None) -> str:
    document_type, prefix = SALE_SEQUENCE
    return next_sequence_number(document_type=document_type, prefix=prefix, on_date=on_date)
