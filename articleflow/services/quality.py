"""Deterministic heuristic scoring for generated articles.

Scores are built from marker counts on five dimensions (authority, actionability,
specificity, recency, engagement), each clamped to 0..100. The overall score is
their arithmetic mean. Nothing here reads the clock unless `reference_year` is
omitted, so identical inputs always produce identical reports.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime

DIMENSIONS: tuple[str, ...] = ("authority", "actionability", "specificity", "recency", "engagement")
STRONG_DIMENSION_SCORE = 70

_HTML_TAG = re.compile(r"<[^>]*>")

_CREDIBILITY_MARKERS = ("years of experience", "former", "led", "managed", "founded", "expert", "specialist", "consultant", "advisor", "researcher", "published", "certified", "award", "recognized")
# Each data pattern counts once when present.
_AUTHORITY_DATA_PATTERNS = tuple(re.compile(pattern) for pattern in (r"\d+%", r"\$\d+", r"\d+x", r"\d+\+", r"\d+ years?", r"increased by \d+", r"reduced by \d+", r"improved by \d+"))
_EXAMPLE_INDICATORS = ("case study", "example", "for instance", "real-world", "in my experience", "i've seen", "companies like")

_ACTION_PHRASES = ("implement", "start", "begin", "create", "build", "develop", "optimize", "improve", "increase", "reduce", "follow these steps", "here's how", "action plan", "next steps", "to do this")
# Step patterns count every occurrence.
_STEP_PATTERNS = tuple(re.compile(pattern, re.IGNORECASE) for pattern in (r"step \d+", r"\d+\.", r"first,|second,|third,", r"<ol>", r"<li>"))
_TOOL_INDICATORS = ("tool", "software", "platform", "service", "app", "framework", "template", "checklist", "calculator")

_SPECIFIC_NUMBER_PATTERNS = tuple(re.compile(pattern) for pattern in (r"\d+%", r"\$\d+", r"\d+x", r"\d+ days?", r"\d+ weeks?", r"\d+ months?", r"\d+k", r"\d+m", r"\d+b", r"\d+\.\d+"))
_COMPANY_NAMES = re.compile(r"google|microsoft|amazon|apple|facebook|salesforce|hubspot|slack|zoom|shopify", re.IGNORECASE)
_ACRONYMS = re.compile(r"[A-Z]{2,}")
_VAGUE_WORDS = ("many", "some", "often", "usually", "generally", "typically", "most", "several", "various", "numerous")

_TREND_WORDS = ("latest", "current", "recent", "new", "emerging", "trending", "updated", "this year", "recently")
_TECH_TRENDS = re.compile(r"\b(?:ai|artificial intelligence|machine learning|gpt|automation|cloud|saas|api|mobile-first)\b")

_PRONOUNS = re.compile(r"\b(?:you|your|we|our|i|my)\b")
_EMOTIONAL_WORDS = ("amazing", "incredible", "powerful", "essential", "critical", "important", "valuable", "effective", "successful", "proven")
_CTA_WORDS = ("download", "subscribe", "contact", "learn more", "get started", "try", "book", "schedule", "sign up", "join")

_STATISTIC = re.compile(r"\d+%|\$\d+")


@dataclass(frozen=True)
class ContentRequirements:
  """Minimum content expectations for an industry."""

  min_examples: int
  min_statistics: int
  min_actionable_steps: int
  required_sections: tuple[str, ...]
  min_word_count: int
  max_word_count: int


@dataclass(frozen=True)
class QualityReport:
  """Outcome of one evaluation."""

  overall_score: float
  dimension_scores: dict[str, float]
  strengths: tuple[str, ...] = ()
  weaknesses: tuple[str, ...] = ()
  missing_elements: tuple[str, ...] = ()
  recommendations: tuple[str, ...] = field(default_factory=tuple)


def strip_html(text: str) -> str:
  return _HTML_TAG.sub("", text)


def count_words(text: str) -> int:
  """Count whitespace-separated words after removing HTML tags."""

  return len(strip_html(text).split())


def _clamp(score: float) -> float:
  return float(max(0, min(100, score)))


def _count_phrase(lower_text: str, phrase: str) -> int:
  return lower_text.count(phrase)


def _score_authority(text: str, lower_text: str) -> float:
  score = sum(5 for marker in _CREDIBILITY_MARKERS if marker in lower_text)
  score += sum(len(pattern.findall(text)) * 3 for pattern in _AUTHORITY_DATA_PATTERNS)
  score += sum(8 for indicator in _EXAMPLE_INDICATORS if indicator in lower_text)
  return _clamp(score)


def _score_actionability(text: str, lower_text: str) -> float:
  score = sum(_count_phrase(lower_text, phrase) * 3 for phrase in _ACTION_PHRASES)
  score += sum(len(pattern.findall(text)) * 2 for pattern in _STEP_PATTERNS)
  score += sum(5 for indicator in _TOOL_INDICATORS if indicator in lower_text)
  return _clamp(score)


def _score_specificity(text: str, lower_text: str) -> float:
  score = sum(len(pattern.findall(text)) * 4 for pattern in _SPECIFIC_NUMBER_PATTERNS)
  score += len(_COMPANY_NAMES.findall(text)) * 3
  score += len(_ACRONYMS.findall(text)) * 2
  # Vague language costs points.
  score -= sum(_count_phrase(lower_text, word) * 2 for word in _VAGUE_WORDS)
  return _clamp(score)


def _score_recency(text: str, lower_text: str, reference_year: int) -> float:
  score = 50
  if str(reference_year) in text:
    score += 20
  if str(reference_year - 1) in text:
    score += 10
  score += sum(5 for word in _TREND_WORDS if word in lower_text)
  score += len(set(_TECH_TRENDS.findall(lower_text))) * 3
  return _clamp(score)


def _score_engagement(text: str, lower_text: str) -> float:
  score = min(30, text.count("?") * 5)
  score += len(_PRONOUNS.findall(lower_text))
  score += sum(3 for word in _EMOTIONAL_WORDS if word in lower_text)
  score += sum(5 for word in _CTA_WORDS if word in lower_text)
  return _clamp(score)


def content_requirements(industry: str | None) -> ContentRequirements:
  """Return the content expectations for an industry hint."""

  sections = ("introduction", "main_content", "examples", "action_steps", "conclusion")
  normalized = (industry or "").lower()
  if "tech" in normalized or "saas" in normalized:
    return ContentRequirements(min_examples=5, min_statistics=8, min_actionable_steps=5, required_sections=sections + ("tools_and_resources", "implementation_guide"), min_word_count=1500, max_word_count=4000)
  return ContentRequirements(min_examples=3, min_statistics=5, min_actionable_steps=5, required_sections=sections, min_word_count=1500, max_word_count=4000)


def _missing_elements(text: str, lower_text: str, requirements: ContentRequirements) -> list[str]:
  missing: list[str] = []
  example_count = lower_text.count("example") + lower_text.count("case study")
  if example_count == 0:
    missing.append("Real-world examples and case studies")
  elif example_count < requirements.min_examples:
    missing.append(f"At least {requirements.min_examples} concrete examples")

  statistic_count = len(_STATISTIC.findall(text))
  if statistic_count == 0:
    missing.append("Specific statistics and metrics")
  elif statistic_count < requirements.min_statistics:
    missing.append(f"At least {requirements.min_statistics} supporting statistics")

  if "<ol>" not in lower_text and "step" not in lower_text:
    missing.append("Step-by-step instructions or numbered lists")

  if "tools_and_resources" in requirements.required_sections and "tool" not in lower_text:
    missing.append("A tools and resources section")
  return missing


_FEEDBACK: dict[str, tuple[str, str, str]] = {
  "authority": ("Strong expert authority with credible sources and experience", "Lacks expert credibility and authority markers", "Add specific credentials, experience, and case studies"),
  "actionability": ("Highly actionable with clear steps and tools", "Content lacks actionable advice and implementation steps", "Include step-by-step guides, tools, and specific actions"),
  "specificity": ("Specific and detailed with concrete examples", "Too generic, lacks specific examples and data", "Add specific metrics, company examples, and concrete data"),
  "recency": ("Current and relevant with latest trends", "Content feels outdated or lacks current relevance", "Include recent trends, current data, and up-to-date examples"),
  "engagement": ("Engaging voice that speaks directly to the reader", "Reads flat and rarely addresses the reader", "Ask questions, address the reader directly, and close with a call to action"),
}


def evaluate(text: str, topic: str, industry_hint: str | None = None, *, reference_year: int | None = None) -> QualityReport:
  """Score an article on five dimensions and describe what to improve."""

  year = reference_year if reference_year is not None else datetime.now(UTC).year
  lower_text = text.lower()

  dimension_scores = {
    "authority": _score_authority(text, lower_text),
    "actionability": _score_actionability(text, lower_text),
    "specificity": _score_specificity(text, lower_text),
    "recency": _score_recency(text, lower_text, year),
    "engagement": _score_engagement(text, lower_text),
  }
  overall = round(sum(dimension_scores.values()) / len(DIMENSIONS), 2)

  strengths: list[str] = []
  weaknesses: list[str] = []
  recommendations: list[str] = []
  for dimension in DIMENSIONS:
    strength, weakness, recommendation = _FEEDBACK[dimension]
    if dimension_scores[dimension] >= STRONG_DIMENSION_SCORE:
      strengths.append(strength)
    else:
      weaknesses.append(weakness)
      recommendations.append(recommendation)

  # The topic should appear in the body; a missing topic is a weakness, not a score change.
  if topic and topic.strip().lower() not in lower_text:
    weaknesses.append(f"Article never mentions the topic '{topic.strip()}' directly")

  missing = _missing_elements(text, lower_text, content_requirements(industry_hint))
  return QualityReport(overall_score=overall, dimension_scores=dimension_scores, strengths=tuple(strengths), weaknesses=tuple(weaknesses), missing_elements=tuple(missing), recommendations=tuple(recommendations))


class QualityEvaluator:
  """Callable wrapper so the attempt loop can take a swappable evaluator."""

  def __init__(self, *, reference_year: int | None = None) -> None:
    self._reference_year = reference_year

  def evaluate(self, text: str, topic: str, industry_hint: str | None = None) -> QualityReport:
    return evaluate(text, topic, industry_hint, reference_year=self._reference_year)
