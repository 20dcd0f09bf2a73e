"""
Data models for the documentation build.

A DocumentTarget spells out every path belonging to one document and the
explicit (source, target) steps that produce them. Build results and the batch
report record what each stage did.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class BuildStage(str, Enum):
    """Pipeline stages, in execution order."""
    COLLECT = "collect"
    EXECUTE = "execute"
    RENDER = "render"
    PUBLISH = "publish"


class StageStatus(str, Enum):
    """Outcome of one stage for one document."""
    SUCCESS = "success"
    SKIPPED = "skipped"    # Target already up to date (incremental builds)
    FAILED = "failed"


class BuildStep(BaseModel):
    """One edge of the build graph: `stage` turns `source` into `target`."""
    stage: BuildStage
    source: Path
    target: Path


class DocumentTarget(BaseModel):
    """All paths belonging to one declared document."""

    name: str
    source: Path
    executed: Path
    rendered: Path
    assets_dir: Path
    published: Path
    published_assets_dir: Path

    @classmethod
    def for_name(
        cls,
        name: str,
        *,
        source_dir: Path,
        output_dir: Path,
        publish_dir: Path,
        extension: str = "ipynb",
    ) -> "DocumentTarget":
        """Derive every artifact path deterministically from the document name."""
        return cls(
            name=name,
            source=source_dir / f"{name}.{extension}",
            executed=output_dir / f"{name}.output.{extension}",
            rendered=output_dir / f"{name}.md",
            assets_dir=output_dir / f"{name}_files",
            published=publish_dir / f"{name}.md",
            published_assets_dir=publish_dir / f"{name}_files",
        )

    def steps(self) -> List[BuildStep]:
        """Build steps in the order they must run."""
        return [
            BuildStep(stage=BuildStage.EXECUTE, source=self.source, target=self.executed),
            BuildStep(stage=BuildStage.RENDER, source=self.executed, target=self.rendered),
            BuildStep(stage=BuildStage.PUBLISH, source=self.rendered, target=self.published),
        ]


class RenderedDocument(BaseModel):
    """A markdown file plus its (optional) directory of extracted assets."""

    name: str
    markdown_path: Path
    assets_dir: Optional[Path] = None
    asset_files: List[str] = Field(default_factory=list)  # Relative to the markdown's directory

    @classmethod
    def from_existing(cls, name: str, markdown_path: Path, assets_dir: Path) -> "RenderedDocument":
        """Describe a rendered document already on disk."""
        if not assets_dir.is_dir():
            return cls(name=name, markdown_path=markdown_path)
        files = sorted(
            path.relative_to(markdown_path.parent).as_posix()
            for path in assets_dir.rglob("*")
            if path.is_file()
        )
        return cls(name=name, markdown_path=markdown_path, assets_dir=assets_dir, asset_files=files)


class StageOutcome(BaseModel):
    """What one stage did for one document."""
    stage: BuildStage
    status: StageStatus
    duration: float = 0.0


class DocumentBuildResult(BaseModel):
    """Result of building a single document."""

    name: str
    status: StageStatus = StageStatus.SUCCESS
    stages: List[StageOutcome] = Field(default_factory=list)

    # Set when the build failed
    failed_stage: Optional[BuildStage] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    published: Optional[RenderedDocument] = None

    @property
    def ok(self) -> bool:
        return self.status != StageStatus.FAILED


class BuildReport(BaseModel):
    """Aggregate result of a batch build."""

    started_at: datetime = Field(default_factory=datetime.now)
    results: List[DocumentBuildResult] = Field(default_factory=list)

    @property
    def failed(self) -> List[DocumentBuildResult]:
        return [result for result in self.results if not result.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> int:
        """0 when every document built, 1 if at least one failed."""
        return 0 if self.ok else 1
