from fastapi import APIRouter

# Import module routers
from vidrelay.modules.download.routes import router as download_router

# Create main API router
api_router = APIRouter()

# Include module routers
api_router.include_router(download_router, tags=["download"])
