"""Heuristic SEO quality scoring for generated blog content."""
import re
from dataclasses import dataclass, field
from typing import List, Sequence

from prometheus_client import Histogram

QUALITY_SCORE_HISTOGRAM = Histogram(
    "content_cache_quality_score",
    "Distribution of generated content quality scores",
    buckets=(50, 60, 70, 80, 90, 100),
)

BASE_SCORE = 60
MAX_SCORE = 100

_TAG_RE = re.compile(r"<[^>]+>")
_HEADING_RE = re.compile(r"<h[1-6][^>]*>", re.IGNORECASE)
_LIST_RE = re.compile(r"<[uo]l[^>]*>", re.IGNORECASE)


@dataclass
class QualityReport:
    """Score, grade and findings for one piece of content."""

    score: int
    grade: str
    findings: List[str] = field(default_factory=list)

    @property
    def analysis(self) -> str:
        return "; ".join(self.findings) if self.findings else "Basic SEO analysis completed"


def strip_html(content: str) -> str:
    """Remove markup, leaving the readable text."""
    return _TAG_RE.sub(" ", content)


def count_words(content: str) -> int:
    return len(strip_html(content).split())


def keyword_density(content: str, keyword: str) -> float:
    """Percentage of words accounted for by occurrences of ``keyword``."""
    text = strip_html(content).lower()
    total = len(text.split())
    if not keyword or total == 0:
        return 0.0
    occurrences = len(re.findall(re.escape(keyword.lower()), text))
    return occurrences / total * 100


def grade_for(score: int) -> str:
    if score >= 85:
        return "Excellent"
    if score >= 70:
        return "Good"
    if score >= 50:
        return "Fair"
    return "Poor"


def score_content(title: str, content: str, keywords: Sequence[str]) -> QualityReport:
    """Score generated content on keyword use, structure and length.

    Args:
        title: Article title
        content: HTML article body
        keywords: Target keywords, primary keyword first

    Returns:
        QualityReport with a score between 0 and 100
    """
    score = BASE_SCORE
    findings: List[str] = []
    primary = keywords[0] if keywords else ""

    if primary:
        density = keyword_density(content, primary)
        if 1 <= density <= 3:
            score += 15
            findings.append(f"keyword density {density:.1f}% is in the 1-3% range")
        elif density > 3:
            score += 5
            findings.append(f"keyword density {density:.1f}% is high")
        else:
            findings.append(f"keyword density {density:.1f}% is low")

        if primary.lower() in title.lower():
            score += 5
            findings.append("title contains the primary keyword")

    headings = len(_HEADING_RE.findall(content))
    if headings >= 3:
        score += 10
        findings.append(f"{headings} headings")

    lists = len(_LIST_RE.findall(content))
    if lists >= 2:
        score += 5
        findings.append(f"{lists} lists")

    words = count_words(content)
    if words >= 500:
        score += 5
    else:
        findings.append(f"only {words} words")

    score = min(score, MAX_SCORE)
    QUALITY_SCORE_HISTOGRAM.observe(score)
    return QualityReport(score=score, grade=grade_for(score), findings=findings)
