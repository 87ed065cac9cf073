from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from .config import Settings, settings
from .exceptions import (
    AuthProviderError,
    ClientNotConnectedError,
    ProviderCommunicationError,
)

_TOKEN_FIELDS = ("access_token", "refresh_token", "expires_in", "token_type")


@dataclass(frozen=True)
class ClientCredentials:
    client_id: str
    client_secret: str


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TokenResponse":
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ProviderCommunicationError(
                "Identity provider did not return an access token"
            )
        expires_in = payload.get("expires_in")
        try:
            expires_in = int(expires_in) if expires_in is not None else None
        except (TypeError, ValueError):
            expires_in = None
        refresh_token = payload.get("refresh_token")
        token_type = payload.get("token_type")
        return cls(
            access_token=access_token,
            refresh_token=str(refresh_token) if refresh_token else None,
            expires_in=expires_in,
            token_type=str(token_type) if token_type else None,
            extra={k: v for k, v in payload.items() if k not in _TOKEN_FIELDS},
        )

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload["access_token"] = self.access_token
        if self.refresh_token is not None:
            payload["refresh_token"] = self.refresh_token
        if self.expires_in is not None:
            payload["expires_in"] = self.expires_in
        if self.token_type is not None:
            payload["token_type"] = self.token_type
        return payload


class ConnectionGate(Protocol):
    def is_connected(self) -> bool: ...

    def credentials(self) -> ClientCredentials: ...


class OAuth2Client(Protocol):
    def authorization_url(
        self, scope: str, callback_url: str, state: str | None = None
    ) -> str: ...

    def exchange_code(self, code: str, callback_url: str) -> TokenResponse: ...


class SettingsConnectionGate:
    """Reports whether this install has provider client credentials at all."""

    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or settings

    def is_connected(self) -> bool:
        return bool(self.config.provider_client_id and self.config.provider_client_secret)

    def credentials(self) -> ClientCredentials:
        if not self.is_connected():
            raise ClientNotConnectedError()
        return ClientCredentials(
            client_id=str(self.config.provider_client_id),
            client_secret=str(self.config.provider_client_secret),
        )


class HttpOAuth2Client:
    def __init__(self, gate: ConnectionGate, config: Settings | None = None) -> None:
        self.gate = gate
        self.config = config or settings

    def authorization_url(
        self, scope: str, callback_url: str, state: str | None = None
    ) -> str:
        credentials = self.gate.credentials()
        params: dict[str, str] = {
            "response_type": "code",
            "client_id": credentials.client_id,
            "redirect_uri": callback_url,
            "scope": scope,
        }
        if state:
            params["state"] = state
        parts = urlsplit(self.config.provider_authorize_url)
        query = [
            (name, value)
            for name, value in parse_qsl(parts.query, keep_blank_values=True)
            if name not in params
        ]
        query.extend(params.items())
        return urlunsplit(parts._replace(query=urlencode(query)))

    def exchange_code(self, code: str, callback_url: str) -> TokenResponse:
        credentials = self.gate.credentials()
        payload = {
            "grant_type": "authorization_code",
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "code": code,
            "redirect_uri": callback_url,
        }
        try:
            response = httpx.post(
                self.config.provider_token_url,
                data=payload,
                headers={"Accept": "application/json"},
                timeout=self.config.provider_http_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise ProviderCommunicationError(
                "Could not reach identity provider"
            ) from exc

        try:
            token_payload = response.json()
        except ValueError:
            token_payload = None

        if not isinstance(token_payload, dict):
            raise ProviderCommunicationError(
                f"Identity provider returned an invalid token response (HTTP {response.status_code})"
            )

        if response.status_code >= 400 or "error" in token_payload:
            error = str(token_payload.get("error") or "token_exchange_failed")
            description = token_payload.get("error_description")
            message = f"{error}: {description}" if description else error
            raise AuthProviderError(message, provider_error=error)

        return TokenResponse.from_payload(token_payload)
