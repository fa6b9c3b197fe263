"""
FastAPI dependencies: service container and authenticated user
"""
import logging
from typing import Optional

from fastapi import Depends, Header, Request

from .config import BULK_ALLOWED_PLANS
from .errors import PlanRestricted, Unauthenticated
from .models import User
from .services import Services

logger = logging.getLogger(__name__)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
) -> User:
    """Resolve the bearer token through the identity provider"""
    token = ""
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()

    if not token:
        raise Unauthenticated("Unauthorized")

    return await services.identity.authenticate(token)


async def require_bulk_plan(user: User = Depends(get_current_user)) -> User:
    if user.plan not in BULK_ALLOWED_PLANS:
        logger.info(f"Bulk CSV blocked for {user.id} on {user.plan} plan")
        raise PlanRestricted(
            "CSV bulk upload is only available for Pro and Business plans. "
            "Please upgrade to use this feature.",
            {"plan": user.plan},
        )
    return user
