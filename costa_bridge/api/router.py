from fastapi import APIRouter
from costa_bridge.api.v1 import auth, cli, usage

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(usage.router, prefix="/usage", tags=["usage"])
api_router.include_router(cli.router, prefix="/cli", tags=["cli"])
