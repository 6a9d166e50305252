"""
ORM event listeners for document totals and append-only audit rows.

- Order and Sale totals are recomputed from their items right before every
  flush, so a persisted document never carries stale aggregates.
- StockHistoryEntry and OrderStatusHistory rows may be inserted but never
  updated or deleted through the ORM.
"""

from __future__ import annotations

import logging

from sqlalchemy import event
from sqlalchemy.orm import Session

from ..errors import ImmutableRecordError
from .catalog import StockHistoryEntry
from .orders import Order, OrderStatusHistory
from .sales import Sale

logger = logging.getLogger(__name__)

APPEND_ONLY_MODELS = (StockHistoryEntry, OrderStatusHistory)


def _recompute_document_totals(session, flush_context, instances):
    for obj in list(session.new) + list(session.dirty):
        if isinstance(obj, (Order, Sale)):
            obj.recompute_totals()


def _reject_update(mapper, connection, target):
    logger.error("Blocked update of append-only %s id=%s", type(target).__name__, target.id)
    raise ImmutableRecordError(f"{type(target).__name__} rows are append-only and cannot be modified")


def _reject_delete(mapper, connection, target):
    logger.error("Blocked delete of append-only %s id=%s", type(target).__name__, target.id)
    raise ImmutableRecordError(f"{type(target).__name__} rows are append-only and cannot be deleted")


def register_model_listeners() -> None:
    """Register listeners once per process."""
    if not event.contains(Session, "before_flush", _recompute_document_totals):
        event.listen(Session, "before_flush", _recompute_document_totals)

    for model in APPEND_ONLY_MODELS:
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)
