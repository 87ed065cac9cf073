from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from .directory import AccountDirectory, AccountInfo
from .registry import BindingRegistry
from .token_info import RemoteIdentityClaims

logger = logging.getLogger(__name__)

CLIENT_NOT_CONNECTED = "client_not_connected"
IDENTITY_NOT_BOUND = "identity_not_bound"
ACCOUNT_REQUIRED = "account_required"


@dataclass(frozen=True)
class Bound:
    claims: RemoteIdentityClaims
    status = True

    def as_response(self) -> dict[str, Any]:
        return {
            "status": True,
            "details": {"webasyst_contact_info": self.claims.as_contact_info()},
        }


@dataclass(frozen=True)
class Conflict:
    claims: RemoteIdentityClaims
    bound_account_id: int
    bound_account_info: AccountInfo
    current_account_info: AccountInfo
    status = False

    def as_response(self) -> dict[str, Any]:
        return {
            "status": False,
            "details": {
                "webasyst_contact_info": self.claims.as_contact_info(),
                "bound_contact_info": self.bound_account_info.as_dict(),
                "current_contact_info": self.current_account_info.as_dict(),
            },
        }


@dataclass(frozen=True)
class Rejected:
    error_code: str
    error_message: str
    status = False

    def as_response(self) -> dict[str, Any]:
        return {
            "status": False,
            "details": {
                "error_code": self.error_code,
                "error_message": self.error_message,
            },
        }


@dataclass(frozen=True)
class SignedIn:
    claims: RemoteIdentityClaims
    account_id: int
    remember_me: bool = False
    status = True

    def as_response(self) -> dict[str, Any]:
        return {
            "status": True,
            "details": {"webasyst_contact_info": self.claims.as_contact_info()},
        }


BindOutcome = Union[Bound, Conflict, Rejected, SignedIn]

CLIENT_NOT_CONNECTED_REJECTION = Rejected(
    error_code=CLIENT_NOT_CONNECTED,
    error_message="Client is not connected",
)


class ConflictResolver:
    def __init__(self, registry: BindingRegistry, directory: AccountDirectory) -> None:
        self.registry = registry
        self.directory = directory

    def resolve(
        self,
        claims: RemoteIdentityClaims,
        current_account_id: int,
        *,
        force: bool,
        token_params: dict[str, Any] | None = None,
    ) -> BindOutcome:
        bound_account_id = self.registry.find_by_remote_id(claims.remote_id)
        conflicting = bound_account_id is not None and bound_account_id != current_account_id

        if conflicting:
            if not force:
                logger.info(
                    "Identity binding conflict",
                    extra={
                        "remote_id": claims.remote_id,
                        "bound_account_id": bound_account_id,
                        "current_account_id": current_account_id,
                    },
                )
                return Conflict(
                    claims=claims,
                    bound_account_id=bound_account_id,
                    bound_account_info=self.directory.summarize(bound_account_id),
                    current_account_info=self.directory.summarize(current_account_id),
                )
            logger.warning(
                "Forcing identity rebind",
                extra={
                    "remote_id": claims.remote_id,
                    "bound_account_id": bound_account_id,
                    "current_account_id": current_account_id,
                },
            )
            self.registry.unbind(bound_account_id, reason="forced_rebind")

        previous_remote_id = self.registry.find_by_account_id(current_account_id)
        if previous_remote_id is not None and previous_remote_id != claims.remote_id:
            # The current account re-binds in place to the new remote identity.
            self.registry.unbind(current_account_id, reason="replaced")

        self.registry.bind(
            claims.remote_id,
            current_account_id,
            token_params=token_params,
            reason="forced_rebind" if conflicting else None,
        )
        return Bound(claims=claims)

    def sign_in(self, claims: RemoteIdentityClaims, *, remember_me: bool = False) -> BindOutcome:
        account_id = self.registry.find_by_remote_id(claims.remote_id)
        if account_id is None:
            return Rejected(
                error_code=IDENTITY_NOT_BOUND,
                error_message="Remote identity is not bound to any account",
            )
        return SignedIn(claims=claims, account_id=account_id, remember_me=remember_me)
