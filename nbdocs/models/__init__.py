"""Data models for nbdocs."""

from .build import (
    BuildReport,
    BuildStage,
    BuildStep,
    DocumentBuildResult,
    DocumentTarget,
    RenderedDocument,
    StageOutcome,
    StageStatus,
)
from .notebook import ExecutionResult, ExecutionStatus, NotebookExecutionResult

__all__ = [
    "BuildReport",
    "BuildStage",
    "BuildStep",
    "DocumentBuildResult",
    "DocumentTarget",
    "ExecutionResult",
    "ExecutionStatus",
    "NotebookExecutionResult",
    "RenderedDocument",
    "StageOutcome",
    "StageStatus",
]
