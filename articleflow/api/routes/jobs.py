import logging

from fastapi import APIRouter, Depends, status

from articleflow.api.deps import get_generation_service, get_owner_id
from articleflow.api.models import ArticleRequest, JobStatusResponse
from articleflow.services.generation import GenerationService

router = APIRouter()
logger = logging.getLogger("articleflow.api.routes.jobs")


@router.post("", response_model=JobStatusResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_job(  # noqa: B008
  request: ArticleRequest,
  owner_id: str = Depends(get_owner_id),  # noqa: B008
  service: GenerationService = Depends(get_generation_service),  # noqa: B008
) -> JobStatusResponse:
  """Queue a single article for generation."""
  record = await service.create_job(owner_id, request.to_domain())
  logger.info("Accepted job %s for owner=%s", record.job_id, owner_id)
  return JobStatusResponse.from_record(record)


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(  # noqa: B008
  job_id: str,
  owner_id: str = Depends(get_owner_id),  # noqa: B008
  service: GenerationService = Depends(get_generation_service),  # noqa: B008
) -> JobStatusResponse:
  """Fetch the status and result of a job."""
  return JobStatusResponse.from_record(await service.get_job(owner_id, job_id))


@router.post("/{job_id}/cancel", response_model=JobStatusResponse)
async def cancel_job(  # noqa: B008
  job_id: str,
  owner_id: str = Depends(get_owner_id),  # noqa: B008
  service: GenerationService = Depends(get_generation_service),  # noqa: B008
) -> JobStatusResponse:
  """Cancel a pending or running job; finished jobs are returned unchanged."""
  return JobStatusResponse.from_record(await service.cancel_job(owner_id, job_id))
