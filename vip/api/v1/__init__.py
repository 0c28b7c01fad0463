"""
API v1 Router Module

All v1 endpoints are prefixed with /api/v1/

Primary endpoint: GET /api/v1/images/{bucket_id}/{image_id}?s=<width>&c=<crop>
- Serves the requested variant, computing it once on a cache miss

Supporting endpoints:
- /api/v1/status/cache - Cache and write-back statistics
- /api/v1/metrics - Prometheus metrics
"""

from fastapi import APIRouter

from vip.api.v1.images import router as images_router
from vip.api.v1.metrics import router as metrics_router
from vip.api.v1.status import router as status_router

# Main v1 router
api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(images_router, prefix="/images", tags=["images"])
api_v1_router.include_router(status_router, prefix="/status", tags=["status"])
api_v1_router.include_router(metrics_router, tags=["metrics"])
