"""Transactional contact writes."""

from .pipeline import MutationPipeline, MutationResult

__all__ = ["MutationPipeline", "MutationResult"]
