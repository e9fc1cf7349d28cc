"""
Screen view models.

Each screen is rendered from the current session as a plain JSON document;
the front end only lays it out.
"""
from typing import Any, Dict, List

from dermascan.core.initial_data import SKIN_CONCERNS
from dermascan.models.schemas import HistoryEntry
from dermascan.models.session import Screen, Session
from dermascan.services.annotations import overlays
from dermascan.services.skin_analysis_service import SkinAnalysisService

SEVERITY_TONES = {
    "Mild": "emerald",
    "Moderate": "amber",
    "Severe": "rose",
}


def history_summary(history: List[HistoryEntry]) -> List[Dict[str, Any]]:
    return [
        {"id": entry.id, "date": entry.date, "condition": entry.condition, "image": entry.image}
        for entry in history
    ]


def _user(session: Session) -> Dict[str, Any]:
    return session.user.model_dump() if session.user is not None else None


def login_view(session: Session) -> Dict[str, Any]:
    return {"screen": Screen.LOGIN.value, "notice": session.notice}


def dashboard_view(session: Session, history: List[HistoryEntry]) -> Dict[str, Any]:
    return {
        "screen": Screen.DASHBOARD.value,
        "user": _user(session),
        "notice": session.notice,
        "concerns": [
            {**concern.model_dump(), "selected": concern.id in session.selected_concerns}
            for concern in SKIN_CONCERNS
        ],
        "selected_concerns": sorted(session.selected_concerns),
        "can_start_scan": session.can_start_scan,
        "history": history_summary(history),
    }


def scanner_view(session: Session, camera_ready: bool) -> Dict[str, Any]:
    return {
        "screen": Screen.SCANNER.value,
        "user": _user(session),
        "camera_ready": camera_ready,
        "error": session.notice,
        "instruction": "Align Face within circle",
    }


def results_view(session: Session) -> Dict[str, Any]:
    view: Dict[str, Any] = {
        "screen": Screen.RESULTS.value,
        "user": _user(session),
        "status": "analyzing" if session.is_analyzing else "ready",
        "image": session.captured_image,
        "show_annotations": session.show_annotations,
        "diagnosis": None,
        "overlays": [],
        "issues_detected": 0,
        "severity_badge": None,
    }
    diagnosis = session.diagnosis
    if diagnosis is not None and not session.is_analyzing:
        view.update({
            "diagnosis": diagnosis.to_json_dict(),
            "overlays": [
                {"label": overlay.label, **overlay.as_css()}
                for overlay in overlays(diagnosis.detections, session.show_annotations)
            ],
            "issues_detected": len(diagnosis.detections),
            "severity_badge": {
                "text": diagnosis.severity.value,
                "tone": SEVERITY_TONES[diagnosis.severity.value],
            },
        })
    return view


def render(service: SkinAnalysisService) -> Dict[str, Any]:
    session = service.session
    if session.screen is Screen.LOGIN:
        return login_view(session)
    if session.screen is Screen.DASHBOARD:
        return dashboard_view(session, service.history)
    if session.screen is Screen.SCANNER:
        return scanner_view(session, service.camera is not None)
    return results_view(session)
