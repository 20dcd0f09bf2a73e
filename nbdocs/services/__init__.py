"""Services implementing the documentation build pipeline."""

from .build_service import BuildService
from .errors import (
    BuildError,
    CellExecutionError,
    ExecutionAbortedError,
    MissingSourceError,
    PublishError,
    RenderError,
    SourceFormatError,
)
from .execution_service import ExecutionService
from .link_checker import BrokenLink, check_links
from .markdown_renderer import MarkdownRenderer
from .publication_service import PublicationService
from .source_collector import SourceCollector

__all__ = [
    "BrokenLink",
    "BuildError",
    "BuildService",
    "CellExecutionError",
    "ExecutionAbortedError",
    "ExecutionService",
    "MarkdownRenderer",
    "MissingSourceError",
    "PublicationService",
    "PublishError",
    "RenderError",
    "SourceCollector",
    "SourceFormatError",
    "check_links",
]
