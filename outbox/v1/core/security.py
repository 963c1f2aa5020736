import secrets
from dataclasses import dataclass

from fastapi import Depends, Header

from outbox.config.settings import AuthMode, Settings, SettingsDep
from outbox.v1.core.exceptions import UnauthorizedError


@dataclass
class Operator:
    """Whoever is calling the operator endpoints."""

    name: str
    via: str


def _matches(provided: str | None, expected: str | None) -> bool:
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


async def get_operator(
    x_admin_token: str | None = Header(None, alias="X-Admin-Token"),
    settings: Settings = SettingsDep,
) -> Operator:
    """
    Dependency injection function to get the calling operator.

    Behavior based on AUTH_MODE:
    - none: every caller is the local operator
    - token: X-Admin-Token must equal ADMIN_TOKEN
    """
    if settings.auth_mode == AuthMode.NONE:
        return Operator(name="local", via="none")
    elif settings.auth_mode == AuthMode.TOKEN:
        if not _matches(x_admin_token, settings.admin_token):
            raise UnauthorizedError("Invalid or missing X-Admin-Token")
        return Operator(name="admin", via="token")
    else:
        raise ValueError(f"Unknown auth mode: {settings.auth_mode}")


async def require_cron_secret(
    x_cron_secret: str | None = Header(None, alias="X-Cron-Secret"),
    settings: Settings = SettingsDep,
) -> None:
    """Guard for scheduler-triggered endpoints. An unset CRON_SECRET rejects everyone."""
    if not _matches(x_cron_secret, settings.cron_secret):
        raise UnauthorizedError("Invalid or missing X-Cron-Secret")


# Convenience type aliases for dependency injection
OperatorDep = Depends(get_operator)
CronDep = Depends(require_cron_secret)
