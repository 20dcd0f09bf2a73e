"""
Build Service: evaluate the per-document build graph.

Each document is an explicit list of (source, target) steps:

    notebooks/<name>.ipynb          --execute-->  _build/<name>.output.ipynb
    _build/<name>.output.ipynb      --render--->  _build/<name>.md (+ <name>_files/)
    _build/<name>.md                --publish-->  docs/<name>.md   (+ <name>_files/)

Documents are built one after another. A failure aborts only that document;
batch builds carry on and report an aggregate status.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, List, Optional

from ..config import BuildConfig
from ..models.build import (
    BuildReport,
    BuildStage,
    DocumentBuildResult,
    DocumentTarget,
    RenderedDocument,
    StageOutcome,
    StageStatus,
)
from .errors import BuildError
from .execution_service import ExecutionService
from .file_ops import is_up_to_date
from .markdown_renderer import MarkdownRenderer
from .publication_service import PublicationService
from .source_collector import SourceCollector

logger = logging.getLogger(__name__)


class BuildService:
    """Run the collect → execute → render → publish pipeline for declared documents."""

    def __init__(
        self,
        config: BuildConfig,
        *,
        collector: Optional[SourceCollector] = None,
        executor: Optional[ExecutionService] = None,
        renderer: Optional[MarkdownRenderer] = None,
        publisher: Optional[PublicationService] = None,
    ):
        self.config = config
        self.collector = collector or SourceCollector(config.source_dir, config.notebook_extension)
        self.executor = executor or ExecutionService(figure_dpi=config.figure_dpi)
        self.renderer = renderer or MarkdownRenderer()
        self.publisher = publisher or PublicationService(config.publish_dir)
        if config.stages_in_publish_dir:
            logger.debug(f"Rendering directly into {config.publish_dir}; publishing copies nothing")

    # ---------------------------
    # Targets
    # ---------------------------

    def declared_names(self) -> List[str]:
        """Configured documents, or every notebook in the source directory."""
        if self.config.documents:
            return list(self.config.documents)
        return self.collector.discover()

    def target(self, name: str) -> DocumentTarget:
        return DocumentTarget.for_name(
            name,
            source_dir=self.config.source_dir,
            output_dir=self.config.output_dir,
            publish_dir=self.config.publish_dir,
            extension=self.config.notebook_extension,
        )

    def targets(self, names: Optional[Iterable[str]] = None) -> List[DocumentTarget]:
        names = self.declared_names() if names is None else list(names)
        return [self.target(name) for name in names]

    # ---------------------------
    # Building
    # ---------------------------

    def build_document(self, name: str) -> DocumentBuildResult:
        """
        Build one document.

        Raises:
            BuildError: the failing stage's error (MissingSourceError,
                        CellExecutionError, RenderError, ...)
        """
        result = DocumentBuildResult(name=name)
        self._build_into(result)
        return result

    def build(self, names: Iterable[str]) -> BuildReport:
        """Build several documents, continuing past failures."""
        report = BuildReport()

        for name in names:
            result = DocumentBuildResult(name=name)
            try:
                self._build_into(result)
            except BuildError as e:
                result.status = StageStatus.FAILED
                result.failed_stage = e.stage
                result.error_type = type(e).__name__
                result.error_message = e.message
                logger.error(f"💥 {name}: {e.stage.value} failed: {e.message}")
            report.results.append(result)

        failed = len(report.failed)
        logger.info(f"Built {len(report.results) - failed}/{len(report.results)} document(s)")
        return report

    def build_all(self) -> BuildReport:
        """Build every declared document."""
        names = self.declared_names()
        if not names:
            logger.warning(f"No documents declared and none found in {self.config.source_dir}")
        return self.build(names)

    def _build_into(self, result: DocumentBuildResult) -> None:
        name = result.name
        target = self.target(name)
        logger.info(f"🔨 Building {name}")

        self._run_stage(result, BuildStage.COLLECT, lambda: self.collector.resolve(name))

        rendered: Optional[RenderedDocument] = None
        upstream_ran = False

        for step in target.steps():
            if self.config.incremental and not upstream_ran and is_up_to_date(step.source, step.target):
                logger.info(f"⏭️ {name}: {step.stage.value} is up to date")
                result.stages.append(StageOutcome(stage=step.stage, status=StageStatus.SKIPPED))
                continue

            if step.stage == BuildStage.EXECUTE:
                self._run_stage(
                    result,
                    step.stage,
                    lambda: self.executor.execute_notebook(target.source, target.executed, name),
                )
            elif step.stage == BuildStage.RENDER:
                rendered = self._run_stage(
                    result,
                    step.stage,
                    lambda: self.renderer.render(target.executed, self.config.output_dir, name),
                )
            elif step.stage == BuildStage.PUBLISH:
                staged = rendered or RenderedDocument.from_existing(name, target.rendered, target.assets_dir)
                result.published = self._run_stage(result, step.stage, lambda: self.publisher.publish(staged))
            upstream_ran = True

        if result.published is None:
            result.published = RenderedDocument.from_existing(
                name, target.published, target.published_assets_dir
            )

    def _run_stage(self, result: DocumentBuildResult, stage: BuildStage, action: Callable[[], Any]) -> Any:
        start_time = time.time()
        try:
            value = action()
        except BuildError as e:
            result.stages.append(
                StageOutcome(stage=stage, status=StageStatus.FAILED, duration=time.time() - start_time)
            )
            if e.document is None:
                e.document = result.name
            raise
        except OSError as e:
            result.stages.append(
                StageOutcome(stage=stage, status=StageStatus.FAILED, duration=time.time() - start_time)
            )
            error = BuildError(f"{type(e).__name__}: {e}", document=result.name)
            error.stage = stage
            raise error from e

        result.stages.append(
            StageOutcome(stage=stage, status=StageStatus.SUCCESS, duration=time.time() - start_time)
        )
        return value

    # ---------------------------
    # Cleaning
    # ---------------------------

    def clean(self, names: Optional[Iterable[str]] = None) -> List:
        """Remove transient artifacts (executed notebooks, staged renders)."""
        removed = []
        for target in self.targets(names):
            removed.extend(self.publisher.clean(target))
        return removed

    def clean_all(self, names: Optional[Iterable[str]] = None) -> List:
        """Remove transient artifacts and published documents."""
        removed = []
        for target in self.targets(names):
            removed.extend(self.publisher.clean_all(target))
        return removed
