from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator

from articleflow.jobs.batches import BatchView
from articleflow.jobs.models import DEFAULT_WORD_COUNT, MAX_WORD_COUNT, MIN_WORD_COUNT, GenerationRequest, JobRecord, JobStatus


class ArticleRequest(BaseModel):
  """Parameters for one article."""

  keyword: StrictStr = Field(min_length=1, max_length=200, description="Topic or keyword the article is about.", examples=["remote team onboarding"])
  word_count: int = Field(default=DEFAULT_WORD_COUNT, ge=MIN_WORD_COUNT, le=MAX_WORD_COUNT, description="Target length in words.")
  tone: StrictStr = Field(default="professional", min_length=1, max_length=50)
  call_to_action: StrictStr | None = Field(default=None, max_length=300)
  industry: StrictStr | None = Field(default=None, max_length=100, description="Optional industry hint used when scoring the article.")
  enable_external_links: StrictBool = Field(default=False, description="Look up reference links; counts against the monthly search quota.")
  force_refresh_links: StrictBool = Field(default=False, description="Bypass cached links for this keyword.")
  model_config = ConfigDict(extra="forbid")

  @field_validator("keyword")
  @classmethod
  def _keyword_not_blank(cls, value: str) -> str:
    if not value.strip():
      raise ValueError("keyword must not be blank")
    return value.strip()

  def to_domain(self) -> GenerationRequest:
    return GenerationRequest(
      keyword=self.keyword,
      word_count=self.word_count,
      tone=self.tone,
      call_to_action=self.call_to_action,
      industry=self.industry,
      enable_external_links=self.enable_external_links,
      force_refresh_links=self.force_refresh_links,
    )


class BatchCreateRequest(BaseModel):
  """A named list of article requests; size limits are enforced by the queue."""

  name: StrictStr | None = Field(default=None, max_length=200)
  items: list[ArticleRequest]
  model_config = ConfigDict(extra="forbid")


class LinkResponse(BaseModel):
  url: str
  title: str
  snippet: str
  relevance_score: float
  authority_score: float


class JobResultResponse(BaseModel):
  content: str
  word_count: int
  quality_score: float
  dimension_scores: dict[str, float]
  links: list[LinkResponse]
  attempts: int


class JobErrorResponse(BaseModel):
  kind: str
  message: str


class JobStatusResponse(BaseModel):
  """Current state of a job."""

  job_id: str
  batch_id: str | None = None
  status: JobStatus
  progress: int
  stage: str | None = None
  attempt: int
  keyword: str
  result: JobResultResponse | None = None
  error: JobErrorResponse | None = None
  logs: list[str] = Field(default_factory=list)
  created_at: str
  updated_at: str
  started_at: str | None = None
  completed_at: str | None = None

  @classmethod
  def from_record(cls, record: JobRecord) -> JobStatusResponse:
    return cls(
      job_id=record.job_id,
      batch_id=record.batch_id,
      status=record.status,
      progress=record.progress,
      stage=record.stage,
      attempt=record.attempt,
      keyword=record.request.keyword,
      result=JobResultResponse.model_validate(record.result.to_dict()) if record.result else None,
      error=JobErrorResponse.model_validate(record.error.to_dict()) if record.error else None,
      logs=list(record.logs),
      created_at=record.created_at,
      updated_at=record.updated_at,
      started_at=record.started_at,
      completed_at=record.completed_at,
    )


class BatchStatusResponse(BaseModel):
  """Aggregated state of a batch and its items."""

  batch_id: str
  name: str | None = None
  status: Literal["pending", "running", "completed", "failed", "cancelled"]
  progress: float
  total_items: int
  completed_count: int
  failed_count: int
  cancelled_count: int
  created_at: str
  items: list[JobStatusResponse]

  @classmethod
  def from_view(cls, view: BatchView) -> BatchStatusResponse:
    return cls(
      batch_id=view.batch_id,
      name=view.name,
      status=view.status,
      progress=view.progress,
      total_items=view.total_items,
      completed_count=view.completed_count,
      failed_count=view.failed_count,
      cancelled_count=view.cancelled_count,
      created_at=view.created_at,
      items=[JobStatusResponse.from_record(item) for item in view.items],
    )


class BatchListResponse(BaseModel):
  batches: list[BatchStatusResponse]
