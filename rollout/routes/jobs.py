from fastapi import APIRouter, HTTPException
import logging

from rollout.models import Job, JobId, Jobs, Options
import rollout.services.registry as registry_service

logger = logging.getLogger(__name__)
router = APIRouter()


def get_registry() -> registry_service.JobRegistry:
    if registry_service.registry is None:
        raise HTTPException(status_code=503, detail="Job registry not initialized")
    return registry_service.registry


@router.post("/jobs", response_model=JobId, status_code=201)
async def create_job(options: Options):
    """
    Start a rollout of an image to a set of destinations.
    Returns as soon as the job is registered; poll or subscribe for progress.
    """
    job_id = await get_registry().create(options)
    return JobId(id=job_id)


@router.get("/jobs", response_model=Jobs)
async def list_jobs():
    """List all known jobs in creation order."""
    return Jobs(jobs=get_registry().list())


@router.get("/jobs/{job_id}", response_model=Job)
async def get_job(job_id: str):
    return get_registry().get(job_id)


@router.delete("/jobs/{job_id}", response_model=Job)
async def cancel_job(job_id: str):
    """
    Cancel a job.
    Already finished jobs are returned unchanged.
    """
    job = await get_registry().cancel(job_id)
    logger.info(f"Cancel requested for job: {job_id}")
    return job
