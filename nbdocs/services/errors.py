"""
Error taxonomy for the documentation build.

Every error names the document it concerns and the stage that failed, so a
batch build can report it and carry on with the remaining documents.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from ..models.build import BuildStage


class BuildError(RuntimeError):
    """Base class for failures that abort a single document's build."""

    stage: BuildStage = BuildStage.COLLECT

    def __init__(self, message: str, *, document: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.document = document


class MissingSourceError(BuildError):
    """A declared document has no source notebook."""

    stage = BuildStage.COLLECT

    def __init__(self, names: Iterable[str], source_dir: str, extension: str):
        self.names: List[str] = list(names)
        expected = ", ".join(f"{source_dir}/{name}.{extension}" for name in self.names)
        noun = "source" if len(self.names) == 1 else "sources"
        document = self.names[0] if len(self.names) == 1 else None
        super().__init__(f"missing notebook {noun}: {expected}", document=document)


class SourceFormatError(BuildError):
    """The source notebook could not be read as a notebook document."""

    stage = BuildStage.EXECUTE


class CellExecutionError(BuildError):
    """A code cell raised while the notebook was executed."""

    stage = BuildStage.EXECUTE

    def __init__(
        self,
        document: str,
        cell_index: int,
        error_type: str,
        error_message: str,
        traceback: str = "",
    ):
        self.cell_index = cell_index
        self.error_type = error_type
        self.error_message = error_message
        self.traceback = traceback
        super().__init__(
            f"cell {cell_index} raised {error_type}: {error_message}",
            document=document,
        )


class RenderError(BuildError):
    """The executed notebook is malformed and cannot be rendered."""

    stage = BuildStage.RENDER


class PublishError(BuildError):
    """The rendered document could not be placed in the publish directory."""

    stage = BuildStage.PUBLISH


class ExecutionAbortedError(BuildError):
    """The process running a notebook died before reporting back."""

    stage = BuildStage.EXECUTE
