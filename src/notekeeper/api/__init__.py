"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth routes decide per-handler whether the access guard runs,
because DELETE /auth/account needs the unverified-exempt variant while
everything else protected uses the strict one.
"""

from fastapi import APIRouter

from notekeeper.api.auth import router as auth_router
from notekeeper.api.health import router as health_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
