"""API endpoint modules for v1."""

from app.api.v1.endpoints import notifications

__all__ = ["notifications"]
