"""Main FastAPI application for the gang workflow engine."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .api.endpoints import GangCatalog, init_dependencies, router
from .config import AppConfig, get_config
from .core.logging import get_logger, setup_logging
from .core.middleware import ErrorHandlingMiddleware


def create_app(config: Optional[AppConfig] = None, catalog: Optional[GangCatalog] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Application settings, defaults to the global configuration
        catalog: Gang catalog, defaults to an empty one building engines with the default LLM factory
    """
    config = config or get_config()
    catalog = catalog or GangCatalog()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.structured_logs
        )
        logger = get_logger(__name__)
        logger.info(f"Starting {config.app_name} v{config.app_version}")

        init_dependencies(catalog)
        logger.info("Gang catalog initialized")

        yield

        logger.info(f"Shutting down {config.app_name}")

    app = FastAPI(
        title=config.app_name,
        description="Run teams of LLM-backed members over declarative workflow graphs",
        version=config.app_version,
        debug=config.debug,
        lifespan=lifespan
    )
    app.add_middleware(ErrorHandlingMiddleware)
    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint for health check."""
        return {"message": f"{config.app_name} is running"}

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "gangflow", "gangs": len(catalog.names())}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, **get_config().get_uvicorn_config())
