"""FastAPI router aggregation."""

from fastapi import APIRouter

from api.activity import router as activity_router
from api.plans import router as plans_router

api_router = APIRouter(prefix="/api/zyra")

api_router.include_router(activity_router, tags=["activity"])
api_router.include_router(plans_router, tags=["plans"])
