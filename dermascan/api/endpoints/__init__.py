"""
API Endpoints Package

This package contains all API endpoint modules for the application.
"""

# Import routers to make them available when importing from this package
from .auth import router as auth_router
from .dashboard import router as dashboard_router
from .capture import router as capture_router
from .analysis import router as analysis_router
from .websocket import router as websocket_router

__all__ = ["auth_router", "dashboard_router", "capture_router", "analysis_router", "websocket_router"]
