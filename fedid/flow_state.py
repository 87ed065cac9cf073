from __future__ import annotations

import hashlib
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwe, jwt
from jose.exceptions import JOSEError

from .config import settings
from .exceptions import InvalidFlowStateError

_FLOW_STATE_TOKEN_TYPE = "identity_flow_state"
_BIND_CONFIRMATION_TOKEN_TYPE = "identity_bind_confirmation"


@dataclass(frozen=True)
class FlowStateToken:
    account_id: int | None = None


@dataclass(frozen=True)
class BindConfirmation:
    account_id: int
    token_payload: dict[str, Any]


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _encode(payload: dict[str, Any], *, token_type: str, expire_seconds: int) -> str:
    claims = dict(payload)
    claims.update(
        {
            "token_type": token_type,
            "jti": uuid.uuid4().hex,
            "exp": _now_utc() + timedelta(seconds=expire_seconds),
        }
    )
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def _decode(token: str, *, token_type: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        raise InvalidFlowStateError()
    if payload.get("token_type") != token_type:
        raise InvalidFlowStateError()
    return payload


def _account_id(raw: Any) -> int:
    try:
        account_id = int(raw)
    except (TypeError, ValueError):
        raise InvalidFlowStateError()
    if account_id <= 0:
        raise InvalidFlowStateError()
    return account_id


def build_flow_state(*, account_id: int | None = None) -> str:
    payload: dict[str, Any] = {}
    if account_id is not None:
        payload["account_id"] = int(account_id)
    return _encode(
        payload,
        token_type=_FLOW_STATE_TOKEN_TYPE,
        expire_seconds=settings.flow_state_expire_seconds,
    )


def parse_flow_state(token: str) -> FlowStateToken:
    payload = _decode(token, token_type=_FLOW_STATE_TOKEN_TYPE)
    raw_account_id = payload.get("account_id")
    if raw_account_id is None:
        return FlowStateToken()
    return FlowStateToken(account_id=_account_id(raw_account_id))


def _payload_key() -> bytes:
    # A256GCM direct encryption takes a 32-byte key.
    return hashlib.sha256(f"bind-confirmation:{settings.secret_key}".encode("utf-8")).digest()


def _seal(payload: dict[str, Any]) -> str:
    sealed = jwe.encrypt(
        json.dumps(payload).encode("utf-8"),
        _payload_key(),
        algorithm="dir",
        encryption="A256GCM",
    )
    return sealed.decode("ascii") if isinstance(sealed, bytes) else sealed


def _unseal(sealed: Any) -> Any:
    if not isinstance(sealed, str) or not sealed:
        raise InvalidFlowStateError()
    try:
        return json.loads(jwe.decrypt(sealed, _payload_key()))
    except (JOSEError, ValueError):
        raise InvalidFlowStateError()


def build_bind_confirmation(*, account_id: int, token_payload: dict[str, Any]) -> str:
    """Provider tokens travel to the user agent here, so they are encrypted, not just signed."""
    return _encode(
        {"account_id": int(account_id), "sealed_payload": _seal(token_payload)},
        token_type=_BIND_CONFIRMATION_TOKEN_TYPE,
        expire_seconds=settings.bind_confirmation_expire_seconds,
    )


def parse_bind_confirmation(token: str) -> BindConfirmation:
    payload = _decode(token, token_type=_BIND_CONFIRMATION_TOKEN_TYPE)
    token_payload = _unseal(payload.get("sealed_payload"))
    if not isinstance(token_payload, dict) or not token_payload.get("access_token"):
        raise InvalidFlowStateError()
    return BindConfirmation(
        account_id=_account_id(payload.get("account_id")),
        token_payload=token_payload,
    )
