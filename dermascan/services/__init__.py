"""
Services package for the skin assessment client.

This package contains the service layer: the session orchestrator, the
Gemini analysis client, camera capture, history persistence and the chat
transcript.
"""

# Import key components to make them available at the package level
from .skin_analysis_service import SkinAnalysisService  # noqa: F401

__all__ = ['SkinAnalysisService']
