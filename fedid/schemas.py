from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    id: Optional[int] = None


class ContactInfo(BaseModel):
    name: str
    userpic: Optional[str] = None
    email: list[dict[str, Any]] = []
    phone: list[dict[str, Any]] = []


class BindDetails(BaseModel):
    webasyst_contact_info: Optional[ContactInfo] = None
    bound_contact_info: Optional[ContactInfo] = None
    current_contact_info: Optional[ContactInfo] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class BindResult(BaseModel):
    status: bool
    details: BindDetails
    confirmation_token: Optional[str] = None


class SignInResult(BaseModel):
    status: bool
    details: BindDetails
    token: Token
    referrer_url: Optional[str] = None


class ConnectionStatus(BaseModel):
    connected: bool


class AuthorizationStart(BaseModel):
    authorization_url: str


class BindConfirmRequest(BaseModel):
    confirmation_token: str


class BindingEventOut(BaseModel):
    event_key: str
    action: str
    remote_id: str
    payload: dict[str, Any]
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
