"""Prompt text for outline and slide generation."""

from __future__ import annotations

from datetime import UTC, datetime


TRUNCATION_MARKER = "\n\n[... content truncated ...]"

OUTLINE_INSTRUCTIONS = """You plan slide decks. Given source material, produce one \
outline entry per slide, in presentation order.

Each outline is a single sentence naming the slide's purpose and its key point, \
with the most important number or fact first. Use exact figures from the source \
when available; never invent ranges.

Return ONLY valid JSON, no code fences:
{"slides": [{"content": "..."}, ...]}"""

SLIDES_INSTRUCTIONS = """You write the content of ONE slide of a presentation.

Return a SINGLE JSON object that matches the provided JSON schema exactly: same \
keys, same nesting, same types. Respect minItems/maxItems on arrays. Keep text \
short: headlines under 30 characters, bullets under 40.

If the schema contains __image_prompt__ or __icon_query__ fields, fill them with \
a short description of a fitting visual. If it contains __speaker_note__, write \
two or three sentences the presenter can say.

Return ONLY the JSON object, no code fences, no commentary."""


def truncate_source(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def combine_source_context(
    prompt_content: str | None, document_content: str | None
) -> str | None:
    """Document text first, then the user's own prompt; None if both are empty."""
    parts = [p.strip() for p in (document_content, prompt_content) if p and p.strip()]
    return "\n\n".join(parts) or None


def build_slide_prompt(
    outline: str,
    source_context: str | None,
    *,
    max_source_chars: int,
    now: datetime | None = None,
) -> str:
    now = now or datetime.now(UTC)
    sections = [f"## CURRENT DATE:\n{now:%A, %B %d, %Y}"]
    if source_context:
        source = truncate_source(source_context, max_source_chars)
        sections.append(f"## SOURCE DOCUMENT (reference for facts and figures):\n{source}")
    sections.append(f"## SLIDE OUTLINE:\n{outline}")
    return "\n\n".join(sections)


def build_outline_prompt(
    prompt_content: str | None,
    document_content: str | None,
    n_slides: int,
    language: str,
) -> str:
    sections = []
    if document_content:
        sections.append(f"## SOURCE DOCUMENT CONTENT:\n{document_content}")
    if prompt_content:
        sections.append(f"## ADDITIONAL INSTRUCTIONS FROM USER:\n{prompt_content}")
    sections.append(
        "## REQUIREMENTS:\n"
        f"- Number of slides: {n_slides}\n"
        f"- Language: {language}\n"
        '- Output: {"slides": [{"content": "..."}, ...]} with exactly '
        f"{n_slides} entries"
    )
    return "\n\n".join(sections)
