from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from rollout.config import settings
from rollout.middleware import add_error_handling_middleware

# Configure logging
logging.basicConfig(level=getattr(logging, settings.log_level.upper()))
logger = logging.getLogger(__name__)

# Create FastAPI app instance
app = FastAPI(
    title=settings.app_name,
    description="Orchestrates rollouts of an image to a set of destinations",
    version=settings.app_version,
    debug=settings.debug
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add error handling middleware
add_error_handling_middleware(app)

# Include routers
from rollout.routes import health, info, jobs, websocket
from rollout.services.registry import init_registry, shutdown_registry

app.include_router(health.router, prefix=settings.api_v1_prefix)
app.include_router(info.router, prefix=settings.api_v1_prefix)
app.include_router(jobs.router, prefix=settings.api_v1_prefix)
app.include_router(websocket.router)

# Registry lifecycle
@app.on_event("startup")
async def _startup():
    await init_registry()


@app.on_event("shutdown")
async def _shutdown():
    await shutdown_registry()

@app.get("/")
async def root():
    """Root endpoint"""
    return {"message": settings.app_name, "version": settings.app_version}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
