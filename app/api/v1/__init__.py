"""
API v1 Router
"""

from fastapi import APIRouter

from app.api.v1 import accounts, admin, auth, csrf

router = APIRouter()

# Include all endpoint routers
router.include_router(csrf.router)
router.include_router(auth.router)
router.include_router(accounts.router)
router.include_router(admin.router)

__all__ = ["router"]
