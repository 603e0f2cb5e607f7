# consultbook/api/deps.py
from __future__ import annotations
from datetime import date
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from consultbook.core.errors import InvalidRequestError, UnauthorizedError
from consultbook.core.logging import get_logger
from consultbook.db.models.user import User
from consultbook.schemas.booking import coerce_day
from consultbook.services.container import Services

logger = get_logger(__name__)

# ---------------------------
# Basic Auth (protects admin)
# ---------------------------
security = HTTPBasic(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


def parse_day_query(value: str) -> date:
    try:
        return coerce_day(value)
    except ValueError as e:
        raise InvalidRequestError(str(e))


async def require_admin(
    creds: Optional[HTTPBasicCredentials] = Depends(security),
    services: Services = Depends(get_services),
) -> User:
    if creds is None:
        raise UnauthorizedError("Unauthorized")
    user = await services.auth.authenticate(creds.username, creds.password)
    if user is None:
        logger.info("admin_auth_failed")
        raise UnauthorizedError("Unauthorized")
    return user
