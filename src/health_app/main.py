import logging

from fastapi import FastAPI
from fastapi.routing import APIRoute

from health_app.routers.health import router as health_router
from health_app.settings import AppInfo, HealthSettings

# Set up logging
logger = logging.getLogger(__name__)


def create_app(settings: HealthSettings | None = None, info: AppInfo | None = None) -> FastAPI:
    """Create the health-check FastAPI application.

    The version is resolved once here and kept on ``app.state``.
    """
    settings = settings or HealthSettings()
    info = info or AppInfo(version=settings.resolve_version())

    app = FastAPI(
        title="DbbSoft demo service",
        summary="Health check for the Elastic Beanstalk deployment",
        version=info.version,
        docs_url="/docs",
        generate_unique_id_function=custom_generate_unique_id,
    )
    app.state.settings = settings
    app.state.info = info

    app.include_router(health_router, tags=["health"])

    logger.info(f"Created app, version {info.version}")
    return app


def custom_generate_unique_id(route: APIRoute):
    """
    Generate prettier `operationId`s in the OpenAPI schema.

    These become the function names in generated client SDKs.
    """
    return f"{route.tags[0]}-{route.name}"
