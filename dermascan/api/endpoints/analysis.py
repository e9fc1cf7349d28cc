"""
Results screen endpoints.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from dermascan.api import views
from dermascan.api.deps import get_service
from dermascan.services.annotations import draw_detections
from dermascan.services.camera import InvalidImageError, open_image
from dermascan.services.skin_analysis_service import SkinAnalysisService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/results/dismiss")
async def dismiss_results(service: SkinAnalysisService = Depends(get_service)) -> Dict[str, Any]:
    service.dismiss_results()
    return views.render(service)


@router.post("/results/annotations/toggle")
async def toggle_annotations(service: SkinAnalysisService = Depends(get_service)) -> Dict[str, Any]:
    service.toggle_annotations()
    return views.render(service)


@router.get("/results/annotated-image")
async def annotated_image(service: SkinAnalysisService = Depends(get_service)) -> Response:
    """Captured image with the detection boxes drawn on it, as PNG."""
    session = service.session
    if not session.is_ready or session.captured_image is None:
        raise HTTPException(status_code=404, detail="No analyzed image")

    try:
        image = open_image(session.captured_image)
    except InvalidImageError as e:
        logger.error(f"Stored image cannot be decoded: {e}")
        raise HTTPException(status_code=500, detail="Stored image cannot be decoded")

    detections = session.diagnosis.detections if session.show_annotations else []
    return Response(content=draw_detections(image, detections), media_type="image/png")
