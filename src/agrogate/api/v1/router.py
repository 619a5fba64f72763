from fastapi import APIRouter

from src.agrogate.api.v1 import auth, org_users, roles

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(roles.router)
api_router.include_router(org_users.router)
