"""Schemas of the service's system endpoints."""

from pydantic import Field

from common.utils.json_model import JsonModel


class VersionResponse(JsonModel):
    """Build version of the running service."""

    version: str = Field(..., description="Build-time version, 'unknown' when not set")


class HelloResponse(JsonModel):
    message: str = Field(default="Hello, World!", description="Greeting")
