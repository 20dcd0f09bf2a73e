"""
Pytest configuration for nbdocs.

Why this exists:
- Tests import the `nbdocs` package from the repository root; depending on the
  pytest import mode the root may not be on `sys.path`.
- Most tests need small notebooks on disk and a build configuration rooted in
  a temporary directory.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Iterable, Optional

import nbformat
import pytest


PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Ensure the repository root is importable (so `import nbdocs` works).
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from nbdocs.config import BuildConfig  # noqa: E402


class NotebookFactory:
    """Write small nbformat v4 notebooks for tests."""

    def __init__(self, directory: Path):
        self.directory = directory

    @staticmethod
    def code(source: str, tags: Optional[Iterable[str]] = None):
        cell = nbformat.v4.new_code_cell(source)
        if tags:
            cell.metadata["tags"] = list(tags)
        return cell

    @staticmethod
    def markdown(source: str):
        return nbformat.v4.new_markdown_cell(source)

    def write(self, name: str, *cells, metadata: Optional[dict] = None, directory: Optional[Path] = None) -> Path:
        notebook = nbformat.v4.new_notebook(cells=list(cells))
        notebook.metadata["kernelspec"] = {
            "display_name": "Python 3",
            "language": "python",
            "name": "python3",
        }
        if metadata:
            notebook.metadata.update(metadata)

        path = (directory or self.directory) / f"{name}.ipynb"
        path.parent.mkdir(parents=True, exist_ok=True)
        nbformat.write(notebook, str(path))
        return path


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep NBDOCS_* variables from the developer's shell out of the tests."""
    for key in list(os.environ):
        if key.startswith("NBDOCS_"):
            monkeypatch.delenv(key)


@pytest.fixture
def notebooks(tmp_path) -> NotebookFactory:
    return NotebookFactory(tmp_path / "notebooks")


@pytest.fixture
def build_config(tmp_path) -> BuildConfig:
    return BuildConfig(
        source_dir=tmp_path / "notebooks",
        output_dir=tmp_path / "_build",
        publish_dir=tmp_path / "docs",
    ).resolved()
