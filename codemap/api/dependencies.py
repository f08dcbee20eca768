"""
Dependency injection for FastAPI endpoints.

The HybridStorage instance is built once in the application lifespan and
kept on app.state; tests swap it through app.dependency_overrides.
"""

from fastapi import Depends, Request

from codemap.service import CodeMapService
from codemap.storage import HybridStorage


def get_storage(request: Request) -> HybridStorage:
    """Get the application's HybridStorage instance."""
    return request.app.state.storage


def get_service(storage: HybridStorage = Depends(get_storage)) -> CodeMapService:
    """Get a CodeMapService bound to the application's storage."""
    return CodeMapService(storage)
