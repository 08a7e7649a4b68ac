"""Generators that produce artifacts on a cache miss.

A generator is any async callable taking a ``GenerationRequest`` and
returning a ``BlogArtifact``, raising on failure.
"""
from content_cache.cache.service import BlogGenerator
from content_cache.generation.openai_generator import OpenAIBlogGenerator
from content_cache.generation.quality import QualityReport, score_content

__all__ = ["BlogGenerator", "OpenAIBlogGenerator", "QualityReport", "score_content"]
