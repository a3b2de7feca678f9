from fastapi import APIRouter
from .platforms import router as platforms_router
from .imports import router as imports_router
from .accounts import router as accounts_router


router = APIRouter()
router.include_router(platforms_router, tags=["platforms"])
router.include_router(imports_router)
router.include_router(accounts_router)
