from fastapi import APIRouter

from app.api.routes import check_email, health, rpc

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(rpc.router, prefix="/api/trpc", tags=["procedures"])
api_router.include_router(check_email.router, prefix="/api/check-email", tags=["signup"])
