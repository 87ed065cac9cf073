from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidTokenError
from sqlalchemy.orm import Session

from . import database, models, schemas
from .config import settings

bearer_scheme = HTTPBearer(auto_error=False, description="Session token issued by the identity callback")

ACCESS_TOKEN_TYPE = "access"  # nosec B105
BEARER_TOKEN_TYPE = "bearer"  # nosec B105


def _decode_token(
    token: str, *, required_claims: tuple[str, ...] = ("exp",)
) -> dict[str, Any]:
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=[settings.algorithm],
        audience=settings.token_audience,
        issuer=settings.token_issuer,
        options={"require": list(required_claims)},
    )
    if not isinstance(payload, dict):
        raise InvalidTokenError("Invalid payload")
    return payload


def create_access_token(
    data: dict[str, Any], expires_minutes: int | None = None
) -> str:
    to_encode = data.copy()
    expire_minutes = (
        settings.access_token_expire_minutes if expires_minutes is None else expires_minutes
    )
    now = datetime.now(timezone.utc)
    to_encode.update(
        {
            "iss": settings.token_issuer,
            "aud": settings.token_audience,
            "iat": now,
            "nbf": now,
            "exp": now + timedelta(minutes=expire_minutes),
            "jti": uuid.uuid4().hex,
            "token_type": ACCESS_TOKEN_TYPE,
        }
    )
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def issue_session_token(account_id: int, *, remember_me: bool = False) -> schemas.Token:
    expires_minutes = None
    if remember_me:
        expires_minutes = settings.remember_me_expire_days * 24 * 60
    return schemas.Token(
        access_token=create_access_token(
            {"account_id": int(account_id)}, expires_minutes=expires_minutes
        ),
        token_type=BEARER_TOKEN_TYPE,
    )


def verify_access_token(
    token: str, credentials_exception: HTTPException
) -> schemas.TokenData:
    try:
        payload = _decode_token(
            token,
            required_claims=("exp", "account_id", "token_type"),
        )
        if payload.get("token_type") != ACCESS_TOKEN_TYPE:
            raise credentials_exception
        token_data = schemas.TokenData(id=int(payload["account_id"]))
    except (InvalidTokenError, ValueError, TypeError):
        raise credentials_exception

    return token_data


def get_current_account(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(database.get_db),
) -> models.Account:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={
            "detail": "Could not validate credentials",
            "error_code": "invalid_credentials",
        },
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise credentials_exception

    token_data = verify_access_token(credentials.credentials, credentials_exception)
    account = db.query(models.Account).filter(models.Account.id == token_data.id).first()
    if account is None:
        raise credentials_exception
    return account
