from fastapi import APIRouter

from .endpoints.curation import router as curation_router
from .endpoints.health import router as health_router

api_router = APIRouter()


@api_router.get("/")
async def root():
    return {"message": "News Curator API is running"}


api_router.include_router(health_router)
api_router.include_router(curation_router)
