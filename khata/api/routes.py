from fastapi import APIRouter
from khata.api.v1 import routes
# versioned routers hang off this one, main.py mounts it under /api
api_router = APIRouter()

api_router.include_router(
    routes.router,
    prefix="/v1",
    tags=["khata"]
)
