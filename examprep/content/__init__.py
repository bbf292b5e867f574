"""Content Module - question generation with deterministic fallback."""

from .generator import ContentGenerator, FallbackContentGenerator, HttpContentGenerator

__all__ = ["ContentGenerator", "FallbackContentGenerator", "HttpContentGenerator"]
