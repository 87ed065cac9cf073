from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import audit, models
from .exceptions import AlreadyBoundError

logger = logging.getLogger(__name__)


class BindingRegistry:
    """Remote identity <-> local account table.

    The mapping is a partial injective function: a remote identity is bound to
    at most one account and an account to at most one remote identity. Both
    directions are checked before writing and backed by unique constraints, so
    a concurrent writer that loses the race gets ``AlreadyBoundError`` instead
    of overwriting the winner. Every mutation is committed on its own.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def _by_remote_id(self, remote_id: str) -> models.IdentityBinding | None:
        return (
            self.db.query(models.IdentityBinding)
            .filter(models.IdentityBinding.remote_id == remote_id)
            .first()
        )

    def _by_account_id(self, account_id: int) -> models.IdentityBinding | None:
        return (
            self.db.query(models.IdentityBinding)
            .filter(models.IdentityBinding.account_id == account_id)
            .first()
        )

    def find_by_remote_id(self, remote_id: str) -> int | None:
        binding = self._by_remote_id(remote_id)
        return int(binding.account_id) if binding is not None else None

    def find_by_account_id(self, account_id: int) -> str | None:
        binding = self._by_account_id(account_id)
        return str(binding.remote_id) if binding is not None else None

    def bind(
        self,
        remote_id: str,
        account_id: int,
        *,
        token_params: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> models.IdentityBinding:
        existing = self._by_remote_id(remote_id)
        if existing is not None:
            if int(existing.account_id) != int(account_id):
                raise AlreadyBoundError(
                    "Remote identity is already bound to another account",
                    remote_id=remote_id,
                    account_id=int(existing.account_id),
                )
            if token_params is not None:
                existing.token_params = token_params  # type: ignore[assignment]
                self.db.commit()
            return existing

        account_binding = self._by_account_id(account_id)
        if account_binding is not None:
            raise AlreadyBoundError(
                "Account is already bound to another remote identity",
                remote_id=str(account_binding.remote_id),
                account_id=int(account_id),
            )

        binding = models.IdentityBinding(
            remote_id=remote_id,
            account_id=int(account_id),
            token_params=token_params,
        )
        self.db.add(binding)
        audit.record_binding_event(
            self.db,
            action=audit.IDENTITY_BOUND,
            remote_id=remote_id,
            account_id=int(account_id),
            payload={"reason": reason} if reason else None,
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(
                "Concurrent identity binding lost the race",
                extra={"remote_id": remote_id, "account_id": account_id},
            )
            raise AlreadyBoundError(
                "Identity binding changed concurrently",
                remote_id=remote_id,
                account_id=int(account_id),
            )
        logger.info(
            "Identity bound",
            extra={"remote_id": remote_id, "account_id": account_id},
        )
        return binding

    def unbind(self, account_id: int, *, reason: str | None = None) -> bool:
        binding = self._by_account_id(account_id)
        if binding is None:
            return False

        remote_id = str(binding.remote_id)
        self.db.delete(binding)
        audit.record_binding_event(
            self.db,
            action=audit.IDENTITY_UNBOUND,
            remote_id=remote_id,
            account_id=int(account_id),
            payload={"reason": reason} if reason else None,
        )
        self.db.commit()
        logger.info(
            "Identity unbound",
            extra={"remote_id": remote_id, "account_id": account_id},
        )
        return True
