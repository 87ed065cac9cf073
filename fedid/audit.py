from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from .models import BindingEvent

IDENTITY_BOUND = "identity.bound"
IDENTITY_UNBOUND = "identity.unbound"


def record_binding_event(
    db: Session,
    *,
    action: str,
    remote_id: str,
    account_id: int,
    payload: dict[str, Any] | None = None,
) -> BindingEvent:
    event = BindingEvent(
        action=action,
        remote_id=remote_id,
        account_id=account_id,
        payload=payload or {},
    )
    db.add(event)
    return event


def list_binding_events(
    db: Session,
    *,
    remote_id: str | None = None,
    account_id: int | None = None,
    limit: int = 100,
) -> list[BindingEvent]:
    query = db.query(BindingEvent)
    if remote_id is not None:
        query = query.filter(BindingEvent.remote_id == remote_id)
    if account_id is not None:
        query = query.filter(BindingEvent.account_id == account_id)
    return query.order_by(BindingEvent.id.asc()).limit(limit).all()
