from fastapi import APIRouter

from learnmap.api.v1.routers.maps import router as maps_router
from learnmap.core.settings import settings

v1_router = APIRouter(prefix=settings.BASE_PATH)

v1_router.include_router(maps_router)
