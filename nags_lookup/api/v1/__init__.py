"""
API v1 Router

Aggregates all v1 API routes.
"""
from fastapi import APIRouter
from nags_lookup.api.v1 import nags

# Create main v1 router
api_router = APIRouter()

api_router.include_router(
    nags.router,
    prefix="/nags",
    tags=["NAGS - Glass Parts Lookup"]
)
