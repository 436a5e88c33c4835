"""API v1."""

from prospector.web.api.v1.router import router

__all__ = ["router"]
