"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import routes, deliveries, lgpd

router = APIRouter()

# Route lifecycle
router.include_router(routes.router)

# Delivery lifecycle, attempts and tracking
router.include_router(deliveries.router)

# LGPD data-subject requests and consents
router.include_router(lgpd.router)
router.include_router(lgpd.admin_router)
