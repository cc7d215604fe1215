"""HTTP Basic credential check for the admin routes.

Use :func:`require_admin` as a route dependency::

    @app.get("/api/admin/logs", dependencies=[Depends(require_admin)])

Credentials are compared against ``IMAGEFUSION_ADMIN_USERNAME`` and
``IMAGEFUSION_ADMIN_PASSWORD`` with :func:`secrets.compare_digest`.  While no
admin password is configured every admin request is answered with 503.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from imagefusion.core.config import FusionConfig

logger = logging.getLogger(__name__)

security = HTTPBasic(realm="Image Fusion Admin")


def check_credentials(credentials: HTTPBasicCredentials, config: FusionConfig) -> bool:
    """Return ``True`` if the credentials match the configured admin pair."""
    if not config.admin_password:
        return False

    username_ok = secrets.compare_digest(
        credentials.username.encode("utf-8"), config.admin_username.encode("utf-8")
    )
    password_ok = secrets.compare_digest(
        credentials.password.encode("utf-8"), config.admin_password.encode("utf-8")
    )
    return username_ok and password_ok


def require_admin(
    request: Request,
    credentials: HTTPBasicCredentials = Depends(security),
) -> str:
    """FastAPI dependency guarding the admin routes.

    Returns:
        The authenticated admin username.

    Raises:
        HTTPException: 503 if admin access is not configured, 401 if the
            credentials are wrong.
    """
    config: FusionConfig = request.app.state.config

    if not config.admin_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin access is not configured",
        )

    if not check_credentials(credentials, config):
        logger.warning(f"Failed admin login for '{credentials.username}'")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username
