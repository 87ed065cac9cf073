from __future__ import annotations

from functools import partial
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from .. import audit, flow_state, models, oauth2, schemas, token_info
from ..config import settings
from ..database import get_db
from ..directory import SqlAccountDirectory
from ..exceptions import InvalidFlowStateError
from ..flow import AuthFlowController, FlowContext, FlowResult, FlowState
from ..provider import HttpOAuth2Client, SettingsConnectionGate, TokenResponse
from ..registry import BindingRegistry
from ..resolver import ConflictResolver, SignedIn

router = APIRouter(prefix="/auth/identity", tags=["Identity"])

_INTENT_PARAMS = ("backend_auth", "invite_token", "referrer_url")
_CALLBACK_PATH = "/api/v1/auth/identity/callback"


def get_connection_gate() -> SettingsConnectionGate:
    return SettingsConnectionGate(settings)


def get_flow_controller(
    db: Session = Depends(get_db),
    gate: SettingsConnectionGate = Depends(get_connection_gate),
) -> AuthFlowController:
    resolver = ConflictResolver(BindingRegistry(db), SqlAccountDirectory(db))
    extractor = partial(
        token_info.extract,
        verify_key=settings.provider_token_verify_key,
        algorithms=settings.provider_token_algorithms,
        audience=settings.provider_token_audience,
    )
    return AuthFlowController(
        gate=gate,
        client=HttpOAuth2Client(gate, settings),
        resolver=resolver,
        extractor=extractor,
        scope=settings.provider_scope,
    )


def _callback_base_url(request: Request) -> str:
    base = settings.public_base_url or str(request.base_url)
    return f"{base.rstrip('/')}{_CALLBACK_PATH}"


def _intent_params(request: Request, *, allow_backend_auth: bool = True) -> dict[str, str]:
    params = {
        name: request.query_params[name]
        for name in _INTENT_PARAMS
        if name in request.query_params
    }
    if not allow_backend_auth:
        params.pop("backend_auth", None)
    return params


def _raise_for_error(result: FlowResult) -> None:
    if result.error is not None:
        raise result.error


def _json(model: Any, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(mode="json", exclude_none=True),
    )


@router.get("/status", response_model=schemas.ConnectionStatus)
def connection_status(gate: SettingsConnectionGate = Depends(get_connection_gate)):
    return schemas.ConnectionStatus(connected=gate.is_connected())


@router.get("/start")
def start(
    request: Request,
    controller: AuthFlowController = Depends(get_flow_controller),
):
    context = FlowContext(
        params=_intent_params(request),
        callback_base_url=_callback_base_url(request),
        state=flow_state.build_flow_state(),
    )
    result = controller.drive(context)
    _raise_for_error(result)
    return RedirectResponse(
        str(result.redirect_url), status_code=status.HTTP_307_TEMPORARY_REDIRECT
    )


@router.post("/bind/start", response_model=schemas.AuthorizationStart)
def bind_start(
    request: Request,
    controller: AuthFlowController = Depends(get_flow_controller),
    current_account: models.Account = Depends(oauth2.get_current_account),
):
    context = FlowContext(
        params=_intent_params(request, allow_backend_auth=False),
        callback_base_url=_callback_base_url(request),
        current_account_id=int(current_account.id),
        state=flow_state.build_flow_state(account_id=int(current_account.id)),
    )
    result = controller.drive(context)
    _raise_for_error(result)
    return schemas.AuthorizationStart(authorization_url=str(result.redirect_url))


@router.get("/callback")
def callback(
    request: Request,
    state: Optional[str] = None,
    controller: AuthFlowController = Depends(get_flow_controller),
) -> Any:
    if not state:
        raise InvalidFlowStateError("Identity callback is missing state")
    parsed_state = flow_state.parse_flow_state(state)

    params = _intent_params(request)
    for name in ("code", "error", "error_description"):
        if name in request.query_params:
            params[name] = request.query_params[name]

    context = FlowContext(
        params=params,
        callback_base_url=_callback_base_url(request),
        current_account_id=parsed_state.account_id,
    )
    result = controller.drive(context)

    # Rejections are bind outcomes with a body of their own, not problem documents.
    if result.state is FlowState.REJECTED:
        rejected_status = (
            result.error.status_code if result.error is not None else status.HTTP_403_FORBIDDEN
        )
        return _json(schemas.BindResult(**result.as_response()), rejected_status)

    _raise_for_error(result)

    if result.state is FlowState.SIGNED_IN and isinstance(result.outcome, SignedIn):
        outcome = result.outcome
        return _json(
            schemas.SignInResult(
                **result.as_response(),
                token=oauth2.issue_session_token(
                    outcome.account_id, remember_me=outcome.remember_me
                ),
                referrer_url=result.intent.referrer_url,
            )
        )

    account_id = parsed_state.account_id
    if result.state is FlowState.CONFLICT and result.token is not None and account_id is not None:
        confirmation_token = flow_state.build_bind_confirmation(
            account_id=account_id,
            token_payload=result.token.as_payload(),
        )
        return _json(
            schemas.BindResult(**result.as_response(), confirmation_token=confirmation_token),
            status.HTTP_409_CONFLICT,
        )

    return _json(schemas.BindResult(**result.as_response()))


@router.post("/bind/confirm")
def bind_confirm(
    payload: schemas.BindConfirmRequest,
    controller: AuthFlowController = Depends(get_flow_controller),
    current_account: models.Account = Depends(oauth2.get_current_account),
):
    confirmation = flow_state.parse_bind_confirmation(payload.confirmation_token)
    if confirmation.account_id != int(current_account.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "detail": "Bind confirmation belongs to another account",
                "error_code": "bind_confirmation_mismatch",
            },
        )

    token = TokenResponse.from_payload(confirmation.token_payload)
    result = controller.confirm_forced_bind(token, int(current_account.id))
    _raise_for_error(result)
    return _json(schemas.BindResult(**result.as_response()))


@router.delete("/binding", status_code=status.HTTP_204_NO_CONTENT)
def unbind(
    db: Session = Depends(get_db),
    current_account: models.Account = Depends(oauth2.get_current_account),
):
    BindingRegistry(db).unbind(int(current_account.id), reason="account_request")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/binding/events", response_model=list[schemas.BindingEventOut])
def binding_events(
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_account: models.Account = Depends(oauth2.get_current_account),
):
    return audit.list_binding_events(db, account_id=int(current_account.id), limit=limit)
