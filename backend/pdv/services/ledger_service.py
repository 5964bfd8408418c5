# Overview: Service-layer operations for the audit ledger; encapsulates business logic and database work.

from __future__ import annotations

import json
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent
"""
Audit Ledger Invariants (authoritative)

- Append-only audit log for cross-cutting domain events.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the domain event they record.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_ledger_event(
    *,
    store_id: int,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    sale_id: int | None = None,
    cash_closing_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    """
    Append-only ledger event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - Flushed, not committed: it lives or dies with the caller's transaction.
    """
    ev = LedgerEvent(
        store_id=store_id,
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        sale_id=sale_id,
        cash_closing_id=cash_closing_id,
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True, default=str) if payload else None,
    )
    if occurred_at is not None:
        ev.occurred_at = occurred_at  # otherwise the db default applies
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_ledger_events(
    store_id: int,
    *,
    category: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 100,
) -> list[LedgerEvent]:
    q = db.session.query(LedgerEvent).filter(LedgerEvent.store_id == store_id)
    if category:
        q = q.filter(LedgerEvent.event_category == category)
    if entity_type:
        q = q.filter(LedgerEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(LedgerEvent.entity_id == entity_id)
    return q.order_by(LedgerEvent.id.desc()).limit(max(1, min(limit, 500))).all()
