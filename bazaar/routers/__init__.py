"""API routers for the Bazaar application."""

from bazaar.routers import import_router

__all__ = ["import_router"]
