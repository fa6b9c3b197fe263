"""
Usage Router
Current month generation usage for the signed-in user
"""
import logging

from fastapi import APIRouter, Depends

from ..dependencies import get_current_user, get_services
from ..models import User
from ..services import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Usage"])


@router.get("/usage")
async def get_usage(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    usage = await services.quota.get_current_usage(user.id)
    return {"success": True, "data": usage.model_dump()}
