"""Prompt builders for article drafting and the improvement pass."""

from __future__ import annotations

from collections.abc import Sequence

from articleflow.jobs.models import GenerationRequest, LinkResult


def word_distribution(word_count: int) -> dict[str, int]:
  """Split the target length into introduction, main body, conclusion and references."""

  intro = int(word_count * 0.15)
  conclusion = int(word_count * 0.10)
  references = int(word_count * 0.05)
  return {"introduction": intro, "main_content": word_count - (intro + conclusion + references), "conclusion": conclusion, "references": references}


def _links_block(links: Sequence[LinkResult]) -> str:
  if not links:
    return ""
  lines = ["Include the following external links where they naturally fit, with descriptive anchor text:"]
  for link in links:
    lines.append(f"- {link.title} ({link.url})")
    if link.snippet:
      lines.append(f"  Snippet: {link.snippet}")
  return "\n".join(lines)


def build_article_prompt(request: GenerationRequest, links: Sequence[LinkResult] = ()) -> str:
  """Build the first-draft prompt for a request."""

  distribution = word_distribution(request.word_count)
  sections = [
    f'Write a {request.word_count}-word article about "{request.keyword}" in a {request.tone} tone.',
    "",
    "Structure:",
    f'1. An <h1> title containing "{request.keyword}"',
    f"2. An introduction of about {distribution['introduction']} words",
    f"3. Three to four <h2> sections totalling about {distribution['main_content']} words, with concrete examples, statistics and numbered steps",
    f"4. A conclusion of about {distribution['conclusion']} words",
    f"5. A short reference list of about {distribution['references']} words",
    "",
    "Requirements:",
    f'- Use the keyword "{request.keyword}" naturally 3-5 times',
    "- Keep paragraphs to 2-3 sentences",
    "- Use HTML tags only, no markdown and no word-count markers",
  ]
  if request.industry:
    sections.append(f"- Write for readers in the {request.industry} industry")
  if request.call_to_action:
    sections.append(f"- End with this call to action: {request.call_to_action}")

  links_block = _links_block(links)
  if links_block:
    sections.extend(["", links_block])
  return "\n".join(sections)


def build_improvement_prompt(request: GenerationRequest, draft: str, weaknesses: Sequence[str], missing_elements: Sequence[str], links: Sequence[LinkResult] = ()) -> str:
  """Ask the provider to revise a draft against the evaluator's feedback."""

  feedback = [f"- {item}" for item in weaknesses] + [f"- Missing: {item}" for item in missing_elements]
  if not feedback:
    feedback = ["- Make the article more specific, actionable and current"]

  sections = [
    f'Improve the following article about "{request.keyword}" while keeping its structure, HTML formatting and roughly {request.word_count} words.',
    "",
    "Address this feedback:",
    *feedback,
  ]
  links_block = _links_block(links)
  if links_block:
    sections.extend(["", links_block])
  sections.extend(["", "Article:", draft, "", "Return only the revised article."])
  return "\n".join(sections)
