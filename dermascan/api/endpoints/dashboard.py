"""
Dashboard endpoints: concern selection, scan start and history.
"""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from dermascan.api import views
from dermascan.api.deps import get_service
from dermascan.core.initial_data import SKIN_CONCERNS
from dermascan.services.skin_analysis_service import SkinAnalysisService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/state")
async def get_state(service: SkinAnalysisService = Depends(get_service)) -> Dict[str, Any]:
    """Current screen rendered from the session."""
    return views.render(service)


@router.get("/concerns")
async def list_concerns() -> List[Dict[str, str]]:
    return [concern.model_dump() for concern in SKIN_CONCERNS]


@router.post("/concerns/{tag_id}/toggle")
async def toggle_concern(tag_id: str, service: SkinAnalysisService = Depends(get_service)) -> Dict[str, Any]:
    try:
        service.toggle_concern(tag_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown concern: {tag_id}")
    return views.render(service)


@router.post("/scan/start")
async def start_scan(service: SkinAnalysisService = Depends(get_service)) -> Dict[str, Any]:
    """Open the scanner. Requires at least one selected concern."""
    await service.start_scan()
    return views.render(service)


@router.get("/history")
async def get_history(service: SkinAnalysisService = Depends(get_service)) -> List[Dict[str, Any]]:
    return views.history_summary(service.history)


@router.post("/history/{entry_id}/select")
async def select_history(entry_id: str, service: SkinAnalysisService = Depends(get_service)) -> Dict[str, Any]:
    try:
        service.select_history(entry_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"History entry not found: {entry_id}")
    return views.render(service)


@router.post("/notice/dismiss")
async def dismiss_notice(service: SkinAnalysisService = Depends(get_service)) -> Dict[str, Any]:
    service.dismiss_notice()
    return views.render(service)


@router.get("/health")
async def health_check() -> Dict[str, str]:
    """Health check endpoint"""
    return {"status": "healthy", "service": "dermascan"}
