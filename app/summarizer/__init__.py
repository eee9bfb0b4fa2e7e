"""LLM-backed changelog summarization."""

from app.summarizer.ai_summarizer import OpenAISummarizer

__all__ = ["OpenAISummarizer"]
