"""
Scanner endpoints: snapshot capture and cancel.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel

from dermascan.api import views
from dermascan.api.deps import get_service
from dermascan.core.config import settings
from dermascan.models.session import Screen
from dermascan.services.camera import InvalidImageError, normalize_image
from dermascan.services.skin_analysis_service import SkinAnalysisService

logger = logging.getLogger(__name__)

router = APIRouter()


class CaptureRequest(BaseModel):
    # Data URL from a browser capture; the local camera is used when absent
    image_data: Optional[str] = None


@router.post("/scanner/capture")
async def capture_image(
    background_tasks: BackgroundTasks,
    request: Optional[CaptureRequest] = None,
    service: SkinAnalysisService = Depends(get_service),
) -> Dict[str, Any]:
    """
    Capture a snapshot and start its analysis.

    Returns the analyzing results screen at once; the analysis result is
    applied to the session when the call completes.
    """
    if service.session.screen is not Screen.SCANNER or service.session.analysis_in_flight:
        raise HTTPException(status_code=409, detail="No scan in progress")

    image_data = request.image_data if request is not None else None
    if image_data:
        # base64 inflates the payload by 4/3
        if len(image_data) * 3 // 4 > settings.MAX_UPLOAD_SIZE:
            raise HTTPException(status_code=413, detail="Image is too large")
        try:
            image = normalize_image(image_data, settings.JPEG_QUALITY)
        except InvalidImageError as e:
            raise HTTPException(status_code=400, detail=f"Invalid image data: {str(e)}")
    else:
        image = await service.take_snapshot()
        if image is None:
            return views.render(service)

    concerns = service.session.selected_concerns
    attempt_id = service.begin_capture(image)
    logger.info(f"Captured image, starting analysis {attempt_id} for {sorted(concerns)}")
    background_tasks.add_task(service.run_analysis, attempt_id, image, concerns)
    return views.render(service)


@router.post("/scanner/cancel")
async def cancel_scan(service: SkinAnalysisService = Depends(get_service)) -> Dict[str, Any]:
    service.cancel_scan()
    return views.render(service)
