"""API routers."""
from .registrations import router as registrations_router

__all__ = ["registrations_router"]
