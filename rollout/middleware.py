from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
import logging
import traceback

from rollout.errors import RolloutError

logger = logging.getLogger(__name__)

_HINTS = {
    400: "Check the request parameters and try again",
    404: "Check the job id; finished jobs may have been evicted",
    429: "Wait for running rollouts to finish and try again",
}

def add_error_handling_middleware(app: FastAPI):
    """Add error handling middleware to FastAPI app"""

    @app.exception_handler(RolloutError)
    async def rollout_error_handler(request: Request, exc: RolloutError):
        """Render orchestrator errors with their own status code"""
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "code": exc.status_code,
                "message": exc.message,
                "hint": _HINTS.get(exc.status_code, "Please try again later"),
                "retryable": exc.retryable
            }
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with proper error format"""
        logger.error(f"HTTP error {exc.status_code}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "code": exc.status_code,
                "message": exc.detail,
                "hint": _HINTS.get(exc.status_code, "Check the request parameters and try again"),
                "retryable": exc.status_code >= 500
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions"""
        logger.error(f"Unhandled exception: {str(exc)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        return JSONResponse(
            status_code=500,
            content={
                "code": 500,
                "message": "Internal server error",
                "hint": "Please try again later or contact support",
                "retryable": True
            }
        )
