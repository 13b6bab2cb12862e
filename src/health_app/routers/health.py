from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from health_app.settings import AppInfo

router = APIRouter()


class HealthResponse(BaseModel):
    """Response model for `GET /health`."""
    status: str
    version: str


def get_app_info(request: Request) -> AppInfo:
    return request.app.state.info


@router.get("/health", response_model=HealthResponse)
async def health_check(info: AppInfo = Depends(get_app_info)) -> HealthResponse:
    """
    Liveness probe used by Elastic Beanstalk and the deploy pipeline.

    Returns 200 whenever the process is serving requests; there are no
    deeper readiness checks.
    """
    return HealthResponse(status="healthy", version=info.version)


@router.get("/", response_class=PlainTextResponse)
async def root(info: AppInfo = Depends(get_app_info)) -> str:
    """Landing page that shows the running version."""
    return f"Craneodev test app for DBB Software. The app is running. Version: {info.version}"
