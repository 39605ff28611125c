from fastapi import APIRouter

from charis.api.routes import agent, health, sessions

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(agent.router, prefix="/agent", tags=["agent"])
api_router.include_router(sessions.router, prefix="/agent/sessions", tags=["sessions"])
