from fastapi import APIRouter
from rowgate.api.endpoints import gateway

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(gateway.router)
