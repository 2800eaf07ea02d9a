from .tenants import router as tenants_router
from .devices import router as devices_router
from .polling import router as polling_router

__all__ = [
    "tenants_router",
    "devices_router",
    "polling_router",
]
