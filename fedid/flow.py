"""OAuth2 authorization-code flow that binds a remote identity to a local account.

A flow never lives in process memory between requests. Everything needed to
resume it is carried on the callback URL, so every step is a single call to
:meth:`AuthFlowController.drive` with the request parameters of that step:

* no ``error`` and no ``code``: the flow has not been sent to the provider
  yet, build the authorization URL and let the caller redirect there;
* ``error``: the provider refused, the flow fails with ``AuthProviderError``;
* ``code``: exchange it for a token, extract the remote identity and bind it
  (or sign in with it, for backend auth).

A binding conflict is a normal outcome. The caller shows it to the user and,
if they confirm, replays the bind with :meth:`confirm_forced_bind`.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .exceptions import (
    AuthProviderError,
    ClientNotConnectedError,
    FederatedIdentityError,
    MalformedTokenError,
)
from .provider import ConnectionGate, OAuth2Client, TokenResponse
from .resolver import (
    ACCOUNT_REQUIRED,
    CLIENT_NOT_CONNECTED_REJECTION,
    BindOutcome,
    Bound,
    Conflict,
    ConflictResolver,
    Rejected,
    SignedIn,
)
from .token_info import RemoteIdentityClaims

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "profile license:bind"


class BackendAuthMode(enum.IntEnum):
    """``backend_auth`` callback parameter; values are the wire values."""

    NONE = 0
    SESSION = 1
    PERSISTENT = 2

    @classmethod
    def parse(cls, raw: Any) -> "BackendAuthMode":
        if raw is None:
            return cls.NONE
        text = str(raw).strip()
        if not text or text == "0":
            return cls.NONE
        if text == "2":
            return cls.PERSISTENT
        return cls.SESSION


class FlowState(str, enum.Enum):
    START = "start"
    AWAITING_PROVIDER_REDIRECT = "awaiting_provider_redirect"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING = "exchanging"
    BOUND = "bound"
    CONFLICT = "conflict"
    REJECTED = "rejected"
    FAILED = "failed"
    SIGNED_IN = "signed_in"


def _optional(params: Mapping[str, Any], name: str) -> str | None:
    value = params.get(name)
    if value is None:
        return None
    text = str(value)
    return text if text else None


@dataclass(frozen=True)
class FlowIntent:
    backend_auth: BackendAuthMode = BackendAuthMode.NONE
    invite_token: str | None = None
    referrer_url: str | None = None
    pending_error: str | None = None
    pending_error_description: str | None = None
    pending_code: str | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "FlowIntent":
        return cls(
            backend_auth=BackendAuthMode.parse(params.get("backend_auth")),
            invite_token=_optional(params, "invite_token"),
            referrer_url=_optional(params, "referrer_url"),
            pending_error=_optional(params, "error"),
            pending_error_description=_optional(params, "error_description"),
            pending_code=_optional(params, "code"),
        )

    @property
    def is_backend_auth(self) -> bool:
        return self.backend_auth is not BackendAuthMode.NONE

    @property
    def remember_me(self) -> bool:
        return self.backend_auth is BackendAuthMode.PERSISTENT

    @property
    def callback_received(self) -> bool:
        return bool(self.pending_error or self.pending_code)

    def callback_params(self) -> list[tuple[str, str]]:
        params: list[tuple[str, str]] = []
        if self.is_backend_auth:
            params.append(("backend_auth", str(int(self.backend_auth))))
        elif self.invite_token:
            params.append(("invite_token", self.invite_token))
        if self.referrer_url:
            params.append(("referrer_url", self.referrer_url))
        return params


def build_callback_url(base_url: str, intent: FlowIntent) -> str:
    parts = urlsplit(base_url)
    intent_params = intent.callback_params()
    reserved = {name for name, _ in intent_params}
    query = [
        (name, value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
        if name not in reserved
    ]
    query.extend(intent_params)
    return urlunsplit(parts._replace(query=urlencode(query)))


@dataclass(frozen=True)
class FlowContext:
    """Everything one flow step needs; nothing is read from ambient state."""

    params: Mapping[str, Any]
    callback_base_url: str
    current_account_id: int | None = None
    state: str | None = None


@dataclass(frozen=True)
class FlowResult:
    state: FlowState
    intent: FlowIntent = field(default_factory=FlowIntent)
    redirect_url: str | None = None
    token: TokenResponse | None = None
    claims: RemoteIdentityClaims | None = None
    outcome: BindOutcome | None = None
    error: FederatedIdentityError | None = None

    @property
    def should_redirect(self) -> bool:
        return bool(self.redirect_url)

    def as_response(self) -> dict[str, Any]:
        if self.outcome is not None:
            return self.outcome.as_response()
        if self.error is not None:
            return {
                "status": False,
                "details": {
                    "error_code": self.error.error_code,
                    "error_message": self.error.message,
                },
            }
        return {"status": False, "details": {}}


Extractor = Callable[[str], RemoteIdentityClaims]


class AuthFlowController:
    def __init__(
        self,
        *,
        gate: ConnectionGate,
        client: OAuth2Client,
        resolver: ConflictResolver,
        extractor: Extractor,
        scope: str = DEFAULT_SCOPE,
    ) -> None:
        self.gate = gate
        self.client = client
        self.resolver = resolver
        self.extractor = extractor
        self.scope = scope

    def drive(self, context: FlowContext, *, force: bool = False) -> FlowResult:
        intent = FlowIntent.from_params(context.params)
        if not intent.callback_received:
            return self._start(context, intent)

        if intent.pending_error:
            message = intent.pending_error
            if intent.pending_error_description:
                message = f"{message}: {intent.pending_error_description}"
            logger.info("Identity provider returned an error", extra={"error": intent.pending_error})
            return FlowResult(
                FlowState.FAILED,
                intent,
                error=AuthProviderError(message, provider_error=intent.pending_error),
            )

        return self._exchange(context, intent, force=force)

    def attempt_bind(
        self, token: TokenResponse, account_id: int, *, intent: FlowIntent | None = None
    ) -> FlowResult:
        return self._bind(token, account_id, force=False, intent=intent or FlowIntent())

    def confirm_forced_bind(
        self, token: TokenResponse, account_id: int, *, intent: FlowIntent | None = None
    ) -> FlowResult:
        return self._bind(token, account_id, force=True, intent=intent or FlowIntent())

    def _rejected_not_connected(self, intent: FlowIntent) -> FlowResult:
        logger.warning("Identity provider client is not connected")
        return FlowResult(
            FlowState.REJECTED,
            intent,
            outcome=CLIENT_NOT_CONNECTED_REJECTION,
            error=ClientNotConnectedError(),
        )

    def _start(self, context: FlowContext, intent: FlowIntent) -> FlowResult:
        if not self.gate.is_connected():
            return self._rejected_not_connected(intent)

        callback_url = build_callback_url(context.callback_base_url, intent)
        try:
            url = self.client.authorization_url(self.scope, callback_url, state=context.state)
        except ClientNotConnectedError:
            return self._rejected_not_connected(intent)
        return FlowResult(FlowState.AWAITING_PROVIDER_REDIRECT, intent, redirect_url=url)

    def _exchange(self, context: FlowContext, intent: FlowIntent, *, force: bool) -> FlowResult:
        if not self.gate.is_connected():
            return self._rejected_not_connected(intent)

        account_id = context.current_account_id
        if not intent.is_backend_auth and account_id is None:
            return FlowResult(
                FlowState.REJECTED,
                intent,
                outcome=Rejected(
                    error_code=ACCOUNT_REQUIRED,
                    error_message="A signed-in account is required to bind an identity",
                ),
            )

        callback_url = build_callback_url(context.callback_base_url, intent)
        try:
            token = self.client.exchange_code(str(intent.pending_code), callback_url)
        except ClientNotConnectedError:
            return self._rejected_not_connected(intent)
        except FederatedIdentityError as exc:
            logger.warning(
                "Authorization code exchange failed",
                extra={"error_code": exc.error_code},
            )
            return FlowResult(FlowState.FAILED, intent, error=exc)

        if intent.is_backend_auth or account_id is None:
            return self._sign_in(token, intent)
        return self._bind(token, account_id, force=force, intent=intent)

    def _extract(self, token: TokenResponse) -> RemoteIdentityClaims:
        return self.extractor(token.access_token)

    def _sign_in(self, token: TokenResponse, intent: FlowIntent) -> FlowResult:
        try:
            claims = self._extract(token)
        except MalformedTokenError as exc:
            return FlowResult(FlowState.FAILED, intent, token=token, error=exc)

        outcome = self.resolver.sign_in(claims, remember_me=intent.remember_me)
        state = FlowState.SIGNED_IN if isinstance(outcome, SignedIn) else FlowState.REJECTED
        return FlowResult(state, intent, token=token, claims=claims, outcome=outcome)

    def _bind(
        self, token: TokenResponse, account_id: int, *, force: bool, intent: FlowIntent
    ) -> FlowResult:
        try:
            claims = self._extract(token)
        except MalformedTokenError as exc:
            return FlowResult(FlowState.FAILED, intent, token=token, error=exc)

        try:
            outcome = self.resolver.resolve(
                claims,
                account_id,
                force=force,
                token_params=token.as_payload(),
            )
        except FederatedIdentityError as exc:
            return FlowResult(FlowState.FAILED, intent, token=token, claims=claims, error=exc)

        if isinstance(outcome, Bound):
            state = FlowState.BOUND
        elif isinstance(outcome, Conflict):
            state = FlowState.CONFLICT
        else:
            state = FlowState.REJECTED
        return FlowResult(state, intent, token=token, claims=claims, outcome=outcome)
