from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .database import engine
from .provider import SettingsConnectionGate


def database_ready() -> bool:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False


def provider_connected() -> bool:
    return SettingsConnectionGate().is_connected()


def readiness_state() -> tuple[bool, dict[str, bool]]:
    checks = {
        "database": database_ready(),
        "provider": provider_connected(),
    }
    # An unconfigured provider still serves unbind and status requests.
    return checks["database"], checks
