"""
API Version 1 Router.

Aggregates all v1 endpoint routers.
"""

from fastapi import APIRouter

from storefront.backend.api.v1.endpoints import order_hooks, polling

router = APIRouter()

# Polling endpoints
router.include_router(polling.router, prefix="/polling", tags=["polling"])

# Order hook endpoints (called by the order system)
router.include_router(order_hooks.router, prefix="/order-hooks", tags=["order-hooks"])
