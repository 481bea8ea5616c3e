"""
FastAPI application for Listing Wizard
Serves the edge proxy endpoints, the wizard and project/usage APIs and uploaded images
"""
import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from . import __version__
from .config import config
from .exceptions import register_exception_handlers
from .logging_config import RequestIDMiddleware, setup_logging
from .project_routes import router as project_router
from .proxy_routes import fallback_router, router as proxy_router
from .wizard_routes import router as wizard_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    Build the application

    Route order matters: the catch-all 404 router is included last.
    """
    setup_logging(env=config.ENV, log_level=config.LOG_LEVEL)

    app = FastAPI(title="Listing Wizard API", version=__version__)

    app.add_middleware(RequestIDMiddleware)
    # Credentials cannot be combined with a wildcard origin
    allow_all = "*" in config.CORS_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else config.CORS_ORIGINS,
        allow_credentials=not allow_all,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    register_exception_handlers(app, envelope_paths={route.path for route in proxy_router.routes})

    @app.get("/")
    async def root():
        return {"message": "Listing Wizard API", "status": "running"}

    @app.get("/health")
    async def health():
        """Health check endpoint for load balancers and monitoring"""
        return {"status": "healthy", "service": "listing-wizard", "version": __version__}

    app.include_router(proxy_router)
    app.include_router(project_router)
    app.include_router(wizard_router)
    app.include_router(fallback_router)

    upload_path = Path(config.UPLOAD_PATH)
    upload_path.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=str(upload_path)), name="uploads")

    logger.info(f"Listing Wizard API configured (env={config.ENV}, store={config.STORE_BACKEND})")
    return app


app = create_app()
