from fastapi import APIRouter
from backend.app.api.v1 import users, couples, invitations, maintenance

api_router = APIRouter()
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(couples.router, prefix="/couples", tags=["couples"])
api_router.include_router(invitations.router, prefix="/invitations", tags=["invitations"])
api_router.include_router(maintenance.router, prefix="/maintenance", tags=["maintenance"])
