"""Domain models for article generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

JobStatus = Literal["pending", "running", "completed", "failed", "cancelled"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})

MIN_WORD_COUNT = 300
MAX_WORD_COUNT = 5000
DEFAULT_WORD_COUNT = 1500


def is_terminal(status: str) -> bool:
  """Return True when no further transitions are possible from a status."""

  return status in TERMINAL_STATUSES


@dataclass(frozen=True)
class GenerationRequest:
  """Immutable parameters describing one article to generate."""

  keyword: str
  word_count: int = DEFAULT_WORD_COUNT
  tone: str = "professional"
  call_to_action: str | None = None
  industry: str | None = None
  enable_external_links: bool = False
  force_refresh_links: bool = False

  def __post_init__(self) -> None:
    if not self.keyword or not self.keyword.strip():
      raise ValueError("keyword must not be empty.")
    if not MIN_WORD_COUNT <= self.word_count <= MAX_WORD_COUNT:
      raise ValueError(f"word_count must be between {MIN_WORD_COUNT} and {MAX_WORD_COUNT}.")

  def to_dict(self) -> dict[str, Any]:
    return {
      "keyword": self.keyword,
      "word_count": self.word_count,
      "tone": self.tone,
      "call_to_action": self.call_to_action,
      "industry": self.industry,
      "enable_external_links": self.enable_external_links,
      "force_refresh_links": self.force_refresh_links,
    }

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> GenerationRequest:
    return cls(
      keyword=payload["keyword"],
      word_count=int(payload.get("word_count") or DEFAULT_WORD_COUNT),
      tone=payload.get("tone") or "professional",
      call_to_action=payload.get("call_to_action"),
      industry=payload.get("industry"),
      enable_external_links=bool(payload.get("enable_external_links", False)),
      force_refresh_links=bool(payload.get("force_refresh_links", False)),
    )


@dataclass(frozen=True)
class LinkResult:
  """A validated, scored external reference."""

  url: str
  title: str
  snippet: str
  relevance_score: float = 0.0
  authority_score: float = 0.0

  def to_dict(self) -> dict[str, Any]:
    return {"url": self.url, "title": self.title, "snippet": self.snippet, "relevance_score": self.relevance_score, "authority_score": self.authority_score}

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> LinkResult:
    return cls(url=payload["url"], title=payload.get("title") or "", snippet=payload.get("snippet") or "", relevance_score=float(payload.get("relevance_score") or 0.0), authority_score=float(payload.get("authority_score") or 0.0))


@dataclass(frozen=True)
class JobResult:
  """Output of a completed job."""

  content: str
  word_count: int
  quality_score: float
  dimension_scores: dict[str, float] = field(default_factory=dict)
  links: tuple[LinkResult, ...] = ()
  attempts: int = 1

  def to_dict(self) -> dict[str, Any]:
    return {
      "content": self.content,
      "word_count": self.word_count,
      "quality_score": self.quality_score,
      "dimension_scores": dict(self.dimension_scores),
      "links": [link.to_dict() for link in self.links],
      "attempts": self.attempts,
    }

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> JobResult:
    return cls(
      content=payload["content"],
      word_count=int(payload["word_count"]),
      quality_score=float(payload["quality_score"]),
      dimension_scores={key: float(value) for key, value in (payload.get("dimension_scores") or {}).items()},
      links=tuple(LinkResult.from_dict(item) for item in payload.get("links") or []),
      attempts=int(payload.get("attempts") or 1),
    )


@dataclass(frozen=True)
class JobError:
  """Failure description stored on a failed job."""

  kind: str
  message: str

  def to_dict(self) -> dict[str, Any]:
    return {"kind": self.kind, "message": self.message}

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> JobError:
    return cls(kind=payload["kind"], message=payload.get("message") or "")


@dataclass
class JobRecord:
  """Represents one trackable article generation job."""

  job_id: str
  owner_id: str
  request: GenerationRequest
  status: JobStatus
  created_at: str
  updated_at: str
  progress: int = 0
  stage: str | None = "queued"
  attempt: int = 0
  result: JobResult | None = None
  error: JobError | None = None
  batch_id: str | None = None
  logs: list[str] = field(default_factory=list)
  started_at: str | None = None
  completed_at: str | None = None

  @property
  def is_terminal(self) -> bool:
    return is_terminal(self.status)
