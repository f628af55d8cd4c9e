"""API routes for the travel companion."""
from .routes import router

__all__ = ["router"]
