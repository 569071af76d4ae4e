# backend/app/routers/__init__.py


from fastapi import APIRouter

from .system import system_router


def build_router(prefix: str = "") -> APIRouter:
    """Root router with every route mounted under the configured path prefix."""
    router = APIRouter()
    router.include_router(system_router, prefix=prefix, tags=["system"])
    return router
