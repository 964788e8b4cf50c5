from fastapi import APIRouter

from . import diagnostics, farms

router = APIRouter(prefix="/v1")
router.include_router(diagnostics.router)
router.include_router(farms.router)
