"""
Source collection: map declared document names to notebook files.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

from .errors import MissingSourceError

logger = logging.getLogger(__name__)


class SourceCollector:
    """Resolve document base names to `<source_dir>/<name>.<extension>` files."""

    def __init__(self, source_dir: Path, extension: str = "ipynb"):
        self.source_dir = Path(source_dir)
        self.extension = extension.lstrip(".")

    def path_for(self, name: str) -> Path:
        return self.source_dir / f"{name}.{self.extension}"

    def resolve(self, name: str) -> Path:
        """Return the source path for one document, or raise MissingSourceError."""
        path = self.path_for(name)
        if not path.is_file():
            raise MissingSourceError([name], str(self.source_dir), self.extension)
        return path

    def collect(self, names: Iterable[str]) -> List[Path]:
        """
        Resolve every declared name, in order.

        Raises:
            MissingSourceError: naming every document whose source is absent.
        """
        names = list(names)
        missing = [name for name in names if not self.path_for(name).is_file()]
        if missing:
            logger.error(f"Missing notebook sources for: {', '.join(missing)}")
            raise MissingSourceError(missing, str(self.source_dir), self.extension)
        return [self.path_for(name) for name in names]

    def discover(self) -> List[str]:
        """
        List every notebook in the source directory by base name.

        Executed artifacts (`*.output.<ext>`) and hidden files such as
        checkpoints are not sources.
        """
        if not self.source_dir.is_dir():
            logger.warning(f"Source directory does not exist: {self.source_dir}")
            return []

        names = []
        output_suffix = f".output.{self.extension}"
        for path in sorted(self.source_dir.glob(f"*.{self.extension}")):
            if path.name.startswith(".") or path.name.endswith(output_suffix):
                continue
            if path.is_file():
                names.append(path.name[: -len(self.extension) - 1])

        logger.debug(f"Discovered {len(names)} notebook(s) in {self.source_dir}")
        return names
