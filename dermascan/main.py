from contextlib import asynccontextmanager
import logging

from dotenv import load_dotenv
load_dotenv()  # This loads the .env file

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from dermascan.api import views
from dermascan.api.deps import get_service
from dermascan.api.endpoints import (
    analysis_router,
    auth_router,
    capture_router,
    dashboard_router,
    websocket_router,
)
from dermascan.core.config import settings
from dermascan.core.initial_data import init_storage
from dermascan.models.session import InvalidTransition

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    handlers = [logging.StreamHandler()]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE))
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_storage()
    service = app.dependency_overrides.get(get_service, get_service)()
    logger.info(f"{settings.APP_NAME} started with {len(service.history)} history entries")
    try:
        yield
    finally:
        # Never leave the camera open after shutdown
        service.shutdown()


app = FastAPI(
    title="DermaScan",
    description="Camera-based skin assessment client",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (auth_router, dashboard_router, capture_router, analysis_router):
    app.include_router(
        router,
        prefix=settings.API_PREFIX,
        tags=["dermascan"],
        responses={status.HTTP_404_NOT_FOUND: {"description": "Not found"}},
    )
app.include_router(websocket_router)

# Root endpoint
@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "documentation": "/docs",
        "endpoints": [
            "GET /api/state - Current screen",
            "POST /api/login - Open the dashboard",
            "POST /api/scan/start - Open the scanner",
            "POST /api/scanner/capture - Capture and analyze a snapshot",
            "WS /ws/chat - Follow-up chat about the current diagnosis",
        ]
    }

# Error handlers
@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    service = app.dependency_overrides.get(get_service, get_service)()
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"error": "Conflict", "message": str(exc), "state": views.render(service)},
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "Validation Error", "message": str(exc)},
    )

@app.exception_handler(500)
async def internal_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url}: {str(exc)}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal Server Error", "message": "An unexpected error occurred"},
    )


def main() -> None:
    configure_logging()
    uvicorn.run(
        "dermascan.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
        workers=1,
    )

if __name__ == "__main__":
    main()
