"""
Publication Service: place rendered documents in the publish directory and
remove build artifacts.

`clean` only touches transient artifacts (the executed notebook and the staged
render); `clean_all` also deletes what was published.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from ..models.build import DocumentTarget, RenderedDocument
from .errors import PublishError
from .file_ops import atomic_copy_file, remove_path, replace_directory

logger = logging.getLogger(__name__)


class PublicationService:
    """Publish rendered documents and clean up after builds."""

    def __init__(self, publish_dir: Path):
        self.publish_dir = Path(publish_dir)

    def _stages_here(self, markdown_path: Path) -> bool:
        return markdown_path.parent.resolve() == self.publish_dir.resolve()

    def publish(self, rendered: RenderedDocument) -> RenderedDocument:
        """
        Copy a rendered document and its assets into the publish directory.

        A previously published document of the same name is replaced, including
        its asset directory (removed when the new render has no assets).

        Raises:
            PublishError: the files could not be copied
        """
        name = rendered.name
        if self._stages_here(rendered.markdown_path):
            logger.debug(f"{name} was rendered in the publish directory, nothing to copy")
            return rendered

        destination = self.publish_dir / f"{name}.md"
        destination_assets = self.publish_dir / f"{name}_files"

        try:
            self.publish_dir.mkdir(parents=True, exist_ok=True)
            replace_directory(rendered.assets_dir, destination_assets)
            atomic_copy_file(rendered.markdown_path, destination)
        except OSError as e:
            logger.error(f"💥 Failed to publish {name} to {self.publish_dir}: {e}")
            raise PublishError(f"cannot publish {name} to {self.publish_dir}: {e}", document=name) from e

        logger.info(f"📦 Published {name} -> {destination}")
        return RenderedDocument(
            name=name,
            markdown_path=destination,
            assets_dir=destination_assets if rendered.assets_dir is not None else None,
            asset_files=list(rendered.asset_files),
        )

    def clean(self, target: DocumentTarget) -> List[Path]:
        """
        Delete the transient artifacts of one document.

        Returns:
            Paths that were removed (already-absent paths are not an error).
        """
        candidates = [target.executed]
        if not self._stages_here(target.rendered):
            candidates.extend([target.rendered, target.assets_dir])
        return self._remove_all(candidates)

    def clean_all(self, target: DocumentTarget) -> List[Path]:
        """Delete transient and published artifacts of one document."""
        removed = self.clean(target)
        removed.extend(self._remove_all([target.published, target.published_assets_dir]))
        return removed

    def _remove_all(self, paths: List[Path]) -> List[Path]:
        removed = [path for path in paths if remove_path(path)]
        for path in removed:
            logger.info(f"🧹 Removed {path}")
        return removed
