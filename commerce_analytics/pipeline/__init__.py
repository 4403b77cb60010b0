"""Staged pipeline composer."""

from commerce_analytics.pipeline.composer import (
    Pipeline,
    PipelineResult,
    Stage,
    StageFunction,
)

__all__ = ["Pipeline", "PipelineResult", "Stage", "StageFunction"]
