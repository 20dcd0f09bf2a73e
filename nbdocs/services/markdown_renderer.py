"""
Markdown Renderer
-----------------
Converts an executed notebook into a markdown page plus a `<name>_files/`
directory holding the images extracted from cell outputs.

- Markdown cells: passed through as-is
- Code cells: fenced code block, followed by the cell's text output
- Image outputs (PNG, JPEG, SVG, PDF): written to `<name>_files/`, referenced by relative path

The transform is deterministic: the same executed notebook always produces the
same markdown text and asset file names.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import nbformat
from nbconvert import MarkdownExporter

from ..models.build import RenderedDocument
from .errors import RenderError
from .file_ops import atomic_write_text, remove_path

logger = logging.getLogger(__name__)


class MarkdownRenderer:
    """Render executed notebooks to markdown documents."""

    def __init__(self, exporter: Optional[MarkdownExporter] = None):
        self._exporter = exporter or MarkdownExporter()

    @staticmethod
    def assets_dir_name(name: str) -> str:
        return f"{name}_files"

    def render(self, executed_path: Path, output_dir: Path, name: str) -> RenderedDocument:
        """
        Render `executed_path` into `<output_dir>/<name>.md` (+ `<name>_files/`).

        Args:
            executed_path: Executed notebook artifact
            output_dir: Directory receiving the markdown and its asset directory
            name: Document name used for the markdown file and asset directory

        Raises:
            RenderError: the executed notebook is missing or malformed
        """
        executed_path = Path(executed_path)
        output_dir = Path(output_dir)
        notebook = self._load_executed(executed_path, name)

        assets_dir_name = self.assets_dir_name(name)
        resources = {
            "metadata": {"name": name},
            "unique_key": name,
            "output_files_dir": assets_dir_name,
        }

        try:
            body, resources = self._exporter.from_notebook_node(notebook, resources=resources)
        except Exception as e:
            logger.error(f"💥 Markdown export failed for {name}: {e}")
            raise RenderError(f"cannot render {executed_path}: {e}", document=name) from e

        markdown_path = output_dir / f"{name}.md"
        assets_dir = output_dir / assets_dir_name
        outputs: Dict[str, bytes] = resources.get("outputs") or {}

        # The previous render's assets are stale either way
        remove_path(assets_dir)
        asset_files: List[str] = []
        for filename in sorted(outputs):
            target = output_dir / filename
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(outputs[filename])
            asset_files.append(Path(filename).as_posix())

        atomic_write_text(markdown_path, body)

        logger.info(f"📝 Rendered {name} -> {markdown_path} ({len(asset_files)} asset(s))")
        return RenderedDocument(
            name=name,
            markdown_path=markdown_path,
            assets_dir=assets_dir if asset_files else None,
            asset_files=asset_files,
        )

    def _load_executed(self, path: Path, name: str):
        """Read the executed notebook, checking the structure rendering relies on."""
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise RenderError(f"cannot read executed notebook {path}: {e}", document=name) from e

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise RenderError(f"{path} is not valid JSON: {e}", document=name) from e

        problem = self._structure_problem(raw)
        if problem:
            logger.error(f"💥 Malformed executed notebook {path}: {problem}")
            raise RenderError(f"malformed executed notebook {path}: {problem}", document=name)

        try:
            notebook = nbformat.reads(text, as_version=4)
            nbformat.validate(notebook)
        except Exception as e:
            raise RenderError(f"invalid executed notebook {path}: {e}", document=name) from e
        return notebook

    @staticmethod
    def _structure_problem(raw: Any) -> Optional[str]:
        if not isinstance(raw, dict):
            return "top level is not a JSON object"
        cells = raw.get("cells")
        if not isinstance(cells, list):
            return "no cell list"
        for index, cell in enumerate(cells):
            if not isinstance(cell, dict) or "cell_type" not in cell:
                return f"cell {index} has no cell_type"
            if cell["cell_type"] == "code" and not isinstance(cell.get("outputs"), list):
                return f"code cell {index} has no outputs list"
        return None
