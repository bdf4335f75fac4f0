from fastapi import APIRouter

from .endpoints import health, members, sync

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(sync.router)
router.include_router(members.router)
