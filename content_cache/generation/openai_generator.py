"""OpenAI-backed blog generator."""

import re
from typing import Any, List, Optional, Tuple

import openai
import structlog
from openai import AsyncOpenAI

from content_cache.cache.models import BlogArtifact, GenerationRequest
from content_cache.errors import ConfigurationError, GenerationError
from content_cache.generation.quality import count_words, score_content

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an expert content writer and SEO specialist. Write well structured "
    "HTML blog posts using h2/h3 headings, paragraphs, lists and bold text."
)

MAX_TOKENS = 8000

_TITLE_RE = re.compile(r"TITLE:\s*(.+?)(?:\n|$)", re.IGNORECASE)
_EXCERPT_RE = re.compile(r"EXCERPT:\s*(.+?)(?:\n|$)", re.IGNORECASE)
_CONTENT_RE = re.compile(r"CONTENT:\s*([\s\S]+)", re.IGNORECASE)


def build_prompt(request: GenerationRequest) -> str:
    """Assemble the user prompt for a generation request."""
    primary = request.keywords[0] if request.keywords else request.topic
    lines = [
        f'TOPIC: "{request.topic}"',
        f"TARGET AUDIENCE: {request.target_audience or 'general audience'}",
        f"TONE: {request.tone or 'professional'}",
        f"MINIMUM WORD COUNT: {request.word_count}",
        f"PRIMARY KEYWORD: {primary}",
    ]
    if len(request.keywords) > 1:
        lines.append(f"SECONDARY KEYWORDS: {', '.join(request.keywords[1:])}")
    if request.seo_optimized:
        lines.append("Place keywords naturally for search engines.")
    if request.exclusions:
        lines.append("Previous titles to avoid duplicating:")
        lines.extend(f'{i}. "{title}"' for i, title in enumerate(request.exclusions, start=1))
        lines.append("Take a completely different angle from these.")
    if request.exclude_content:
        lines.append(f'Do not repeat this existing content: "{request.exclude_content[:200]}..."')
    lines.append("")
    lines.append("RESPONSE FORMAT:")
    lines.append("TITLE: <title>")
    lines.append("EXCERPT: <150-160 character meta description>")
    lines.append("CONTENT: <HTML article>")
    return "\n".join(lines)


def parse_response(text: str) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """Split a model response into title, excerpt and content sections."""
    title_match = _TITLE_RE.search(text)
    excerpt_match = _EXCERPT_RE.search(text)
    content_match = _CONTENT_RE.search(text)

    title = title_match.group(1).strip() if title_match else None
    excerpt = excerpt_match.group(1).strip() if excerpt_match else None
    content = None
    if content_match:
        content = content_match.group(1)
        content = re.sub(r"^(TITLE|EXCERPT):.*$", "", content, flags=re.MULTILINE | re.IGNORECASE)
        content = content.strip() or None
    return title, excerpt, content


class OpenAIBlogGenerator:
    """Generate blog artifacts with the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4",
        temperature: float = 0.7,
        client: Optional[Any] = None,
    ):
        """Initialize the generator.

        Args:
            api_key: OpenAI API key, required unless a client is supplied
            model: Chat model name
            temperature: Sampling temperature for first generations
            client: Preconfigured async client
        """
        if client is None:
            if not api_key:
                raise ConfigurationError("OpenAI API key not configured")
            client = AsyncOpenAI(api_key=api_key)
        self.client = client
        self.model = model
        self.temperature = temperature

    async def __call__(self, request: GenerationRequest) -> BlogArtifact:
        """Generate an artifact for ``request``.

        Raises:
            GenerationError: If the API call fails or the output is unusable
        """
        # Regenerations ask for more variety
        temperature = self.temperature + 0.1 if request.exclusions else self.temperature
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(request)},
                ],
                max_tokens=min(request.word_count * 3, MAX_TOKENS),
                temperature=temperature,
            )
        except openai.OpenAIError as e:
            logger.error("openai_request_failed", topic=request.topic, error=str(e))
            raise GenerationError(
                f"OpenAI request failed: {e}", details={"model": self.model}
            ) from e

        text = completion.choices[0].message.content if completion.choices else None
        if not text:
            raise GenerationError("OpenAI returned an empty response", details={"model": self.model})

        title, excerpt, content = parse_response(text)
        if not content:
            raise GenerationError(
                "OpenAI response has no CONTENT section", details={"preview": text[:200]}
            )

        title = title or request.topic.title()
        keywords: List[str] = request.keywords or [request.topic]
        report = score_content(title, content, keywords)
        logger.info(
            "blog_generated",
            topic=request.topic,
            model=self.model,
            word_count=count_words(content),
            quality_score=report.score,
        )
        return BlogArtifact(
            title=title,
            excerpt=excerpt or "",
            content=content,
            word_count=count_words(content),
            quality_score=report.score,
            quality_grade=report.grade,
            quality_analysis=report.analysis,
        )
