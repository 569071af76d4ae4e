from typing import Annotated

from fastapi import Depends, Request

from common.core.config_service import Settings


def get_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


SettingsDep = Annotated[Settings, Depends(get_settings)]
