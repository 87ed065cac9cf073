"""Decode provider access tokens into remote identity claims.

The provider issues self-describing JWT access tokens, so no network call is
needed to learn who the remote identity is. When a verification key is
configured the signature is checked; otherwise the payload is read as-is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

import jwt
from jwt import InvalidTokenError

from .exceptions import MalformedTokenError

_REMOTE_ID_CLAIMS = ("contact_id", "sub")


@dataclass(frozen=True)
class ContactEmail:
    address: str
    verified: bool = False


@dataclass(frozen=True)
class ContactPhone:
    number: str
    verified: bool = False


@dataclass(frozen=True)
class RemoteIdentityClaims:
    remote_id: str
    display_name: str | None = None
    avatar_url: str | None = None
    emails: tuple[ContactEmail, ...] = ()
    phones: tuple[ContactPhone, ...] = ()

    def as_contact_info(self) -> dict[str, Any]:
        return {
            "name": self.display_name or "",
            "userpic": self.avatar_url,
            "email": [
                {"value": email.address, "status": _status(email.verified)}
                for email in self.emails
            ],
            "phone": [
                {"value": phone.number, "status": _status(phone.verified)}
                for phone in self.phones
            ],
        }


def _status(verified: bool) -> str:
    return "confirmed" if verified else "unconfirmed"


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in {"true", "1", "yes", "confirmed"}
    if isinstance(value, int):
        return value != 0
    return False


def _remote_id(payload: dict[str, Any]) -> str:
    for claim in _REMOTE_ID_CLAIMS:
        raw = payload.get(claim)
        if isinstance(raw, bool) or raw is None:
            continue
        if isinstance(raw, (str, int)):
            value = str(raw).strip()
            if value:
                return value
    raise MalformedTokenError("Access token does not identify a remote contact")


def _display_name(payload: dict[str, Any]) -> str | None:
    name = payload.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    parts = [payload.get("given_name"), payload.get("family_name")]
    joined = " ".join(part.strip() for part in parts if isinstance(part, str) and part.strip())
    return joined or None


def _as_items(value: Any) -> Iterable[Any]:
    if value is None:
        return ()
    if isinstance(value, (str, dict)):
        return (value,)
    if isinstance(value, (list, tuple)):
        return value
    return ()


def _contact_values(
    value: Any, *, keys: tuple[str, ...], default_verified: bool
) -> list[tuple[str, bool]]:
    values: list[tuple[str, bool]] = []
    for item in _as_items(value):
        if isinstance(item, str) and item.strip():
            values.append((item.strip(), default_verified))
            continue
        if not isinstance(item, dict):
            continue
        raw = next((item.get(key) for key in keys if item.get(key)), None)
        if not isinstance(raw, str) or not raw.strip():
            continue
        verified = _to_bool(item.get("verified", item.get("status", False)))
        values.append((raw.strip(), verified))
    return values


def claims_from_payload(payload: dict[str, Any]) -> RemoteIdentityClaims:
    email_claim = payload.get("emails", payload.get("email"))
    phone_claim = payload.get("phones", payload.get("phone"))
    emails = _contact_values(
        email_claim,
        keys=("value", "email", "address"),
        default_verified=_to_bool(payload.get("email_verified")),
    )
    phones = _contact_values(
        phone_claim,
        keys=("value", "number", "phone"),
        default_verified=_to_bool(payload.get("phone_verified")),
    )
    avatar = payload.get("userpic") or payload.get("picture")
    return RemoteIdentityClaims(
        remote_id=_remote_id(payload),
        display_name=_display_name(payload),
        avatar_url=avatar if isinstance(avatar, str) and avatar else None,
        emails=tuple(ContactEmail(address, verified) for address, verified in emails),
        phones=tuple(ContactPhone(number, verified) for number, verified in phones),
    )


def extract(
    access_token: str,
    *,
    verify_key: str | None = None,
    algorithms: Sequence[str] = ("RS256",),
    audience: str | None = None,
) -> RemoteIdentityClaims:
    if not isinstance(access_token, str) or not access_token.strip():
        raise MalformedTokenError("Access token is empty")

    try:
        if verify_key:
            options = {"verify_aud": audience is not None}
            payload = jwt.decode(
                access_token,
                verify_key,
                algorithms=list(algorithms),
                audience=audience,
                options=options,
            )
        else:
            payload = jwt.decode(
                access_token,
                options={"verify_signature": False, "verify_exp": False},
            )
    except InvalidTokenError as exc:
        raise MalformedTokenError(f"Access token could not be decoded: {exc}") from exc

    if not isinstance(payload, dict):
        raise MalformedTokenError("Access token payload is not an object")
    return claims_from_payload(payload)
