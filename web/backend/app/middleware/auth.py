"""Auth middleware -- FastAPI dependencies for configuration and the trigger secret.

The discovery trigger is meant to be called by a scheduler. When
``SCOUT_CRON_SECRET`` is set, callers must send it as
``Authorization: Bearer <secret>``; when it is empty the check is off.
"""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from scout.config import ScoutConfig, load_config
from scout.errors import ConfigurationError
from scout.registry.store import RegistryStore


def get_config() -> ScoutConfig:
    """Load configuration from the environment for the current request."""
    try:
        return load_config()
    except ConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )


def get_store(config: ScoutConfig = Depends(get_config)) -> RegistryStore:
    """Return a RegistryStore for the configured database."""
    return RegistryStore(config.db_path, timeout=config.store_timeout)


def check_cron_secret(authorization: Optional[str], config: ScoutConfig) -> None:
    """Raise ``401 Unauthorized`` unless *authorization* carries the secret."""
    if not config.cron_secret:
        return

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() == "bearer" and hmac.compare_digest(token, config.cron_secret):
        return

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_cron_secret(
    authorization: Optional[str] = Header(None),
    config: ScoutConfig = Depends(get_config),
) -> None:
    """FastAPI dependency guarding the discovery trigger."""
    check_cron_secret(authorization, config)
