"""
Primary FastAPI application entry point
"""
import logging
from typing import Optional

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware

from resource_api.api.api import api_router
from resource_api.api.deps import lifespan, make_connection_manager
from resource_api.core.config import Settings, settings
from resource_api.core.errors import install_exception_handlers
from resource_api.core.logging_config import configure_logging
from resource_api.data_access.connections import ConnectionManager

logger = logging.getLogger(__name__)


def create_app(
    connection_manager: Optional[ConnectionManager] = None,
    config: Settings = settings,
) -> FastAPI:
    """
    Creates the application. Tests pass their own ConnectionManager; otherwise
    one is built from settings.
    """
    app = FastAPI(
        title=config.PROJECT_NAME,
        version=config.VERSION,
        docs_url=f"{config.API_V1_STR}/docs",
        redoc_url=f"{config.API_V1_STR}/redoc",
        openapi_url=f"{config.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.connection_manager = connection_manager or make_connection_manager(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Last-Modified"],
    )

    install_exception_handlers(app)
    app.include_router(api_router, prefix=config.API_V1_STR)

    @app.get("/", status_code=status.HTTP_200_OK)
    async def root():
        """Root endpoint to confirm the API is running."""
        return {"message": f"Welcome to {config.PROJECT_NAME}"}

    return app


configure_logging()
logger.info("Starting Resource API server...")

app = create_app()

# For local development
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("resource_api.server:app", host="0.0.0.0", port=8080, reload=True)
