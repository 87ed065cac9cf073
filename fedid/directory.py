from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy.orm import Session

from . import models


@dataclass(frozen=True)
class AccountInfo:
    name: str
    userpic: str | None = None
    email: list[dict[str, Any]] = field(default_factory=list)
    phone: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "userpic": self.userpic,
            "email": [dict(item) for item in self.email],
            "phone": [dict(item) for item in self.phone],
        }


class AccountDirectory(Protocol):
    def summarize(self, account_id: int) -> AccountInfo: ...


def _contact_list(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [dict(item) for item in raw if isinstance(item, dict)]


class SqlAccountDirectory:
    def __init__(self, db: Session) -> None:
        self.db = db

    def summarize(self, account_id: int) -> AccountInfo:
        account = (
            self.db.query(models.Account).filter(models.Account.id == account_id).first()
        )
        if account is None:
            return AccountInfo(name="")
        return AccountInfo(
            name=str(account.name or ""),
            userpic=account.userpic_url,  # type: ignore[arg-type]
            email=_contact_list(account.emails),
            phone=_contact_list(account.phones),
        )
