"""
Processing Module

Producer/consumer orchestration of a metatile cleanup run.
"""

from .cleanup_pipeline import CleanupPipeline, PipelineState, RunSummary

__all__ = ["CleanupPipeline", "PipelineState", "RunSummary"]
