"""Recompilation pipeline: one target directory in, one artifact out."""

from recompiler.pipeline.orchestrator import ArtifactPipeline, BatchReport, write_artifact

__all__ = ["ArtifactPipeline", "BatchReport", "write_artifact"]
