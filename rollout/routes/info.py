from fastapi import APIRouter
from datetime import datetime, timezone
import logging
import platform
import sys

from rollout.config import settings
import rollout.services.registry as registry_service

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/server/info")
async def server_info():
    """
    Server information endpoint
    Returns server details, rollout limits and job counts
    """
    logger.info("Server info requested")
    registry = registry_service.registry
    return {
        "service": "rollout-orchestrator",
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "system": {
            "platform": platform.platform(),
            "python_version": sys.version,
        },
        "rollout": {
            "executor": type(registry.executor).__name__ if registry is not None else None,
            "jobs_total": len(registry) if registry is not None else 0,
            "jobs_active": registry.active_count() if registry is not None else 0,
            "max_active_jobs": settings.max_active_jobs,
            "default_timeout_seconds": settings.default_timeout_seconds,
            "abort_on_failure": settings.abort_on_failure,
        },
        "status": "running" if registry is not None else "starting"
    }
