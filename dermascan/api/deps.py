"""
Shared service instance for the endpoints.
"""
from functools import lru_cache

from dermascan.core.config import settings
from dermascan.services.gemini_service import get_gemini_service
from dermascan.services.history_store import HistoryStore
from dermascan.services.skin_analysis_service import SkinAnalysisService


@lru_cache()
def get_service() -> SkinAnalysisService:
    """The one session of this client process."""
    history_store = HistoryStore(settings.history_path, settings.HISTORY_SLOT, settings.HISTORY_LIMIT)
    return SkinAnalysisService(get_gemini_service(), history_store)
