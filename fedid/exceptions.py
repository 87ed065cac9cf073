"""Error taxonomy shared by the flow controller, the registry and the HTTP layer.

Every error carries a stable ``error_code`` and the HTTP status the web layer
uses when it renders the error as a problem document.
"""

from __future__ import annotations

from typing import Any


class FederatedIdentityError(Exception):
    error_code = "federated_identity_error"
    status_code = 400
    default_message = "Federated identity request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def problem_extra(self) -> dict[str, Any]:
        """Additional members for the rendered problem document."""
        return {}


class AuthProviderError(FederatedIdentityError):
    """The provider redirected back with an ``error`` parameter."""

    error_code = "provider_error"
    status_code = 400
    default_message = "Identity provider returned an error"

    def __init__(self, message: str | None = None, *, provider_error: str | None = None) -> None:
        super().__init__(message)
        self.provider_error = provider_error

    def problem_extra(self) -> dict[str, Any]:
        if not self.provider_error:
            return {}
        return {"provider_error": self.provider_error}


class ProviderCommunicationError(FederatedIdentityError):
    error_code = "provider_unreachable"
    status_code = 502
    default_message = "Could not communicate with identity provider"


class MalformedTokenError(FederatedIdentityError):
    error_code = "malformed_token"
    status_code = 502
    default_message = "Identity provider returned a malformed access token"


class ClientNotConnectedError(FederatedIdentityError):
    error_code = "client_not_connected"
    status_code = 503
    default_message = "Client is not connected"


class AlreadyBoundError(FederatedIdentityError):
    error_code = "identity_already_bound"
    status_code = 409
    default_message = "Identity binding already exists"

    def __init__(
        self,
        message: str | None = None,
        *,
        remote_id: str | None = None,
        account_id: int | None = None,
    ) -> None:
        super().__init__(message)
        self.remote_id = remote_id
        self.account_id = account_id


class InvalidFlowStateError(FederatedIdentityError):
    error_code = "invalid_flow_state"
    status_code = 400
    default_message = "Invalid identity flow state"
