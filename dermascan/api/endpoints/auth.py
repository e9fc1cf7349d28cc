"""
Login screen endpoints.

No real authentication is performed: any non-empty email and password pair
opens the dashboard.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from dermascan.api import views
from dermascan.api.deps import get_service
from dermascan.services.skin_analysis_service import SkinAnalysisService

logger = logging.getLogger(__name__)

router = APIRouter()


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/login")
async def login(request: LoginRequest, service: SkinAnalysisService = Depends(get_service)) -> Dict[str, Any]:
    service.login(request.email, request.password)
    logger.info(f"User {service.session.user.email} signed in")
    return views.render(service)


@router.post("/logout")
async def logout(service: SkinAnalysisService = Depends(get_service)) -> Dict[str, Any]:
    service.logout()
    return views.render(service)
