from fastapi import APIRouter

from app.dependencies import SettingsDep
from app.schemas.system import HelloResponse, VersionResponse

system_router = APIRouter()


@system_router.get("/version")
async def version(settings: SettingsDep) -> VersionResponse:
    """Build version of the running service."""
    return VersionResponse(version=settings.version)


@system_router.get("/hello")
async def hello() -> HelloResponse:
    return HelloResponse()
