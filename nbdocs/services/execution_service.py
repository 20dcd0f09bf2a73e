"""
Execution Service for running notebook code cells and capturing results.

Every code cell of a notebook runs in document order inside a fresh namespace.
Each notebook gets its own spawned interpreter, so module imports, numpy print
options, matplotlib settings and any other process-wide state a notebook
changes end with it. Printed text, rich display values and matplotlib figures
are captured as nbformat outputs, and the executed notebook is written
atomically: either the whole notebook ran and the artifact exists, or there is
no artifact at all.
"""

import ast
import base64
import builtins
import concurrent.futures
import hashlib
import io
import linecache
import logging
import multiprocessing
import os
import platform
import random
import re
import sys
import time
import tokenize
import traceback
import warnings
from concurrent.futures.process import BrokenProcessPool
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import matplotlib
import matplotlib.pyplot as plt
import nbformat
import numpy as np
from matplotlib.figure import Figure

from ..config import LOG_FORMAT
from ..models.notebook import ExecutionResult, ExecutionStatus, NotebookExecutionResult
from .errors import BuildError, CellExecutionError, ExecutionAbortedError, SourceFormatError
from .file_ops import atomic_write_text, remove_path

# Configure matplotlib for non-interactive backend
matplotlib.use("Agg")

logger = logging.getLogger(__name__)

# Cells carrying this tag may raise without failing the build (nbclient convention)
ALLOW_ERRORS_TAG = "raises-exception"

# Rich representations probed by display() and for trailing expressions
_REPR_METHODS = (
    ("_repr_html_", "text/html"),
    ("_repr_markdown_", "text/markdown"),
    ("_repr_svg_", "image/svg+xml"),
    ("_repr_png_", "image/png"),
    ("_repr_jpeg_", "image/jpeg"),
    ("_repr_latex_", "text/latex"),
)
_BINARY_MIME_TYPES = {"image/png", "image/jpeg"}

# IPython line magics and shell escapes (`%matplotlib inline`, `!pip install ...`)
_MAGIC_LINE_RE = re.compile(r"^(\s*)([%!].*)$")


def mime_bundle(obj: Any) -> Dict[str, Any]:
    """
    Build the nbformat mime bundle for a displayed object.

    Always contains `text/plain`; richer types are added when the object
    implements the matching `_repr_*_` method.
    """
    data: Dict[str, Any] = {"text/plain": repr(obj)}
    if isinstance(obj, type):
        return data

    for method_name, mime_type in _REPR_METHODS:
        method = getattr(obj, method_name, None)
        if not callable(method):
            continue
        try:
            value = method()
        except Exception as e:
            logger.warning(f"{type(obj).__name__}.{method_name}() failed: {e}")
            continue

        # IPython allows returning (data, metadata)
        if isinstance(value, tuple):
            value = value[0] if value else None
        if value is None:
            continue

        if isinstance(value, bytes):
            if mime_type in _BINARY_MIME_TYPES:
                value = base64.b64encode(value).decode("ascii")
            else:
                value = value.decode("utf-8")
        data[mime_type] = value

    return data


def _ends_with_semicolon(code: str) -> bool:
    """IPython convention: a trailing `;` suppresses the cell's result."""
    lines = [
        line for line in code.rstrip().splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]
    return bool(lines) and lines[-1].rstrip().endswith(";")


def _is_complete_statement(source: str) -> bool:
    """
    True when `source` ends outside any bracket, string or backslash continuation.

    The next physical line then starts a new logical line.
    """
    try:
        for _token in tokenize.generate_tokens(io.StringIO(source).readline):
            pass
    except tokenize.TokenError:
        # EOF inside a multi-line statement or string
        return False
    except SyntaxError:
        # Let compile() report it
        return True
    return True


def _execute_in_subprocess(
    notebook,
    source_path: Path,
    output_path: Path,
    name: str,
    figure_dpi: int,
    log_level: int,
) -> Tuple[Any, NotebookExecutionResult]:
    """Entry point of the spawned interpreter that runs one notebook."""
    logging.basicConfig(level=log_level, format=LOG_FORMAT, stream=sys.stderr)
    service = ExecutionService(figure_dpi=figure_dpi, isolated=False)
    result = service._execute(notebook, source_path, output_path, name)
    return notebook, result


class _CellOutputCollector:
    """Accumulates the outputs of one cell in the order they were produced."""

    def __init__(self, figure_dpi: int):
        self.figure_dpi = figure_dpi
        self.outputs: List[Any] = []
        self.stdout = io.StringIO()
        self.stderr = io.StringIO()
        self.stdout_text = ""
        self.stderr_text = ""
        self.figure_count = 0

    def flush_streams(self) -> None:
        """Move buffered stdout/stderr text into stream outputs."""
        for name, buffer in (("stdout", self.stdout), ("stderr", self.stderr)):
            text = buffer.getvalue()
            if not text:
                continue
            buffer.seek(0)
            buffer.truncate(0)

            if name == "stdout":
                self.stdout_text += text
            else:
                self.stderr_text += text

            last = self.outputs[-1] if self.outputs else None
            if last is not None and last["output_type"] == "stream" and last["name"] == name:
                last["text"] += text
            else:
                self.outputs.append(nbformat.v4.new_output("stream", name=name, text=text))

    def display(self, *objs: Any) -> None:
        self.flush_streams()
        for obj in objs:
            self.outputs.append(nbformat.v4.new_output("display_data", data=mime_bundle(obj)))

    def add_result(self, value: Any, execution_count: int) -> None:
        self.flush_streams()
        self.outputs.append(
            nbformat.v4.new_output(
                "execute_result",
                data=mime_bundle(value),
                execution_count=execution_count,
            )
        )

    def add_error(self, exc: BaseException, traceback_lines: List[str]) -> None:
        self.flush_streams()
        self.outputs.append(
            nbformat.v4.new_output(
                "error",
                ename=type(exc).__name__,
                evalue=str(exc),
                traceback=[line.rstrip("\n") for line in traceback_lines],
            )
        )

    def capture_figures(self) -> None:
        """Capture every open matplotlib figure as a PNG display output, then close them."""
        self.flush_streams()
        for number in plt.get_fignums():
            figure = plt.figure(number)
            buffer = io.BytesIO()
            figure.savefig(buffer, format="png", bbox_inches="tight", dpi=self.figure_dpi)
            data = {
                "image/png": base64.b64encode(buffer.getvalue()).decode("ascii"),
                "text/plain": repr(figure),
            }
            buffer.close()
            self.outputs.append(nbformat.v4.new_output("display_data", data=data))
            self.figure_count += 1
        plt.close("all")


class _DisplayPublisher:
    """Routes display() and plt.show() calls to the cell currently executing."""

    def __init__(self):
        self.collector: Optional[_CellOutputCollector] = None

    def display(self, *objs: Any, **kwargs: Any) -> None:
        if self.collector is not None:
            self.collector.display(*objs)

    def show(self, *args: Any, **kwargs: Any) -> None:
        # Figures are flushed into the cell's outputs instead of opening a window
        if self.collector is not None:
            self.collector.capture_figures()


class ExecutionService:
    """Service for executing notebooks and capturing rich outputs."""

    def __init__(self, figure_dpi: int = 100, isolated: bool = True):
        """
        Args:
            figure_dpi: Resolution of captured matplotlib figures
            isolated: Run each notebook in its own spawned interpreter. With
                      False, cells run in the calling process.
        """
        self.figure_dpi = figure_dpi
        self.isolated = isolated

    @staticmethod
    def seed_for(name: str) -> int:
        """Consistent random seed derived from the document name."""
        return int(hashlib.md5(name.encode()).hexdigest()[:8], 16) % (2**31)

    def execute_notebook(
        self,
        source_path: Path,
        output_path: Path,
        name: Optional[str] = None,
    ) -> NotebookExecutionResult:
        """
        Execute all code cells of a notebook and write the executed artifact.

        Args:
            source_path: Notebook source to run
            output_path: Where the executed notebook is written
            name: Document name (defaults to the source file's stem)

        Returns:
            NotebookExecutionResult summarizing every code cell

        Raises:
            SourceFormatError: the source is not a readable notebook
            CellExecutionError: a cell raised and was not allowed to
            ExecutionAbortedError: the interpreter running the notebook died
        """
        source_path = Path(source_path)
        output_path = Path(output_path)
        name = name or source_path.stem

        try:
            notebook = self._read_source(source_path, name)
            if self.isolated:
                notebook, result = self._execute_isolated(notebook, source_path, output_path, name)
            else:
                result = self._execute(notebook, source_path, output_path, name)

            failure = result.failure
            if failure is not None:
                raise CellExecutionError(
                    name,
                    failure.cell_index,
                    failure.error_type or "Exception",
                    failure.error_message or "",
                    failure.traceback or "",
                )
        except BuildError:
            # A failed run must not leave a previous artifact looking valid
            if remove_path(output_path):
                logger.info(f"🧹 Removed stale executed notebook {output_path}")
            raise

        notebook.metadata["language_info"] = {
            "name": "python",
            "version": platform.python_version(),
            "mimetype": "text/x-python",
            "file_extension": ".py",
        }
        atomic_write_text(output_path, nbformat.writes(notebook))

        if result.error_count:
            logger.warning(f"⚠️ {name}: {result.error_count} cell(s) raised expected errors")

        logger.info(
            f"✅ Executed {name}: {len(result.cells)} code cell(s) in "
            f"{result.execution_time:.2f}s -> {output_path}"
        )
        return result

    def _read_source(self, path: Path, name: str):
        try:
            return nbformat.read(str(path), as_version=4)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"💥 Cannot read notebook source {path}: {e}")
            raise SourceFormatError(f"cannot read notebook {path}: {e}", document=name) from e

    def _execute_isolated(
        self,
        notebook,
        source_path: Path,
        output_path: Path,
        name: str,
    ) -> Tuple[Any, NotebookExecutionResult]:
        """Run `_execute` in a freshly spawned interpreter and return its results."""
        context = multiprocessing.get_context("spawn")
        log_level = logging.getLogger().getEffectiveLevel()

        with concurrent.futures.ProcessPoolExecutor(max_workers=1, mp_context=context) as pool:
            future = pool.submit(
                _execute_in_subprocess,
                notebook,
                source_path,
                output_path,
                name,
                self.figure_dpi,
                log_level,
            )
            try:
                return future.result()
            except BrokenProcessPool as e:
                logger.error(f"💥 Interpreter running {name} exited unexpectedly")
                raise ExecutionAbortedError(
                    f"the process executing {name} exited before finishing",
                    document=name,
                ) from e

    def _execute(self, notebook, source_path: Path, output_path: Path, name: str) -> NotebookExecutionResult:
        """Run the code cells in order, stopping at the first cell that may not fail."""
        seed = self.seed_for(name)
        result = NotebookExecutionResult(
            name=name,
            source_path=source_path,
            output_path=output_path,
            seed=seed,
        )
        allow_errors = bool(notebook.metadata.get("execution", {}).get("allow_errors", False))
        start_time = time.time()

        logger.info(f"🚀 Executing {name} ({len(notebook.cells)} cells) with seed {seed}")

        with self._fresh_session(source_path.parent, seed) as publisher:
            namespace = self._initialize_globals(publisher)
            execution_count = 0

            for index, cell in enumerate(notebook.cells):
                if cell.cell_type != "code":
                    continue

                cell.outputs = []
                if not cell.source.strip():
                    cell.execution_count = None
                    result.cells.append(ExecutionResult(cell_index=index, status=ExecutionStatus.SKIPPED))
                    continue

                execution_count += 1
                cell.execution_count = execution_count
                cell_result = self._execute_cell(cell, index, execution_count, namespace, publisher)
                result.cells.append(cell_result)

                if cell_result.status != ExecutionStatus.ERROR:
                    continue

                tags = cell.metadata.get("tags", [])
                if allow_errors or ALLOW_ERRORS_TAG in tags:
                    logger.info(f"Cell {index} of {name} raised {cell_result.error_type} (allowed)")
                    continue

                logger.error(f"💥 EXECUTION FAILED for {name}, cell {index}")
                logger.error(f"💥 {cell_result.error_type}: {cell_result.error_message}")
                logger.debug(f"💥 Code that failed:\n{cell.source}")
                result.failed_cell_index = index
                break

        result.execution_time = time.time() - start_time
        return result

    @contextmanager
    def _fresh_session(self, working_dir: Path, seed: int) -> Iterator[_DisplayPublisher]:
        """
        Process-level state for one notebook run, restored afterwards.

        The notebook's directory becomes the working directory and is importable,
        random generators are seeded, matplotlib starts from its rc file defaults.
        """
        previous_cwd = os.getcwd()
        previous_show = plt.show
        path_entry = str(working_dir.resolve())
        publisher = _DisplayPublisher()

        plt.close("all")
        matplotlib.rc_file_defaults()
        random.seed(seed)
        np.random.seed(seed)

        plt.show = publisher.show
        sys.path.insert(0, path_entry)
        os.chdir(path_entry)
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore", message=".*non-interactive.*")
                yield publisher
        finally:
            os.chdir(previous_cwd)
            plt.show = previous_show
            if path_entry in sys.path:
                sys.path.remove(path_entry)
            plt.close("all")

    def _initialize_globals(self, publisher: _DisplayPublisher) -> Dict[str, Any]:
        """Initialize the global namespace shared by a notebook's cells."""
        return {
            "__name__": "__main__",
            "__builtins__": builtins,
            "display": publisher.display,
        }

    def _execute_cell(
        self,
        cell,
        index: int,
        execution_count: int,
        namespace: Dict[str, Any],
        publisher: _DisplayPublisher,
    ) -> ExecutionResult:
        """Run one code cell, attaching its outputs to the cell."""
        collector = _CellOutputCollector(self.figure_dpi)
        publisher.collector = collector
        result = ExecutionResult(cell_index=index, execution_count=execution_count)
        filename = f"<cell-{index}>"
        code = self._preprocess_code(cell.source)
        start_time = time.time()

        try:
            with redirect_stdout(collector.stdout), redirect_stderr(collector.stderr):
                value = self._run_code(code, filename, namespace)
                if value is not None and not isinstance(value, Figure) and not _ends_with_semicolon(code):
                    namespace["_"] = value
                    collector.add_result(value, execution_count)
                collector.capture_figures()
            result.status = ExecutionStatus.SUCCESS

        except (Exception, SystemExit) as e:
            # sys.exit() and exit() in a cell fail the cell, as in IPython
            traceback_lines = self._format_traceback(e)
            collector.add_error(e, traceback_lines)
            plt.close("all")

            result.status = ExecutionStatus.ERROR
            result.error_type = type(e).__name__
            result.error_message = str(e)
            result.traceback = "".join(traceback_lines)

        finally:
            collector.flush_streams()
            publisher.collector = None
            result.execution_time = time.time() - start_time

        cell.outputs = collector.outputs
        result.stdout = collector.stdout_text
        result.stderr = collector.stderr_text
        result.output_count = len(collector.outputs)
        result.figure_count = collector.figure_count
        logger.debug(f"Cell {index}: {result.status.value} in {result.execution_time:.3f}s")
        return result

    def _run_code(self, code: str, filename: str, namespace: Dict[str, Any]) -> Any:
        """
        Execute a cell's code; return the value of a trailing expression, if any.
        """
        # Lets tracebacks show the offending source lines
        linecache.cache[filename] = (len(code), None, code.splitlines(True), filename)

        tree = ast.parse(code, filename=filename, mode="exec")
        last_expr = None
        if tree.body and isinstance(tree.body[-1], ast.Expr):
            last_expr = ast.Expression(body=tree.body.pop().value)

        exec(compile(tree, filename, "exec"), namespace)
        if last_expr is None:
            return None
        return eval(compile(last_expr, filename, "eval"), namespace)

    def _preprocess_code(self, code: str) -> str:
        """
        Neutralize IPython-only syntax so the cell is plain Python.

        Line magics and shell escapes become `pass` statements (keeping the
        indentation valid); a leading cell magic line is commented out. Only
        lines that start a logical line are candidates, so operators opening a
        continuation line (`    != b`) and string contents are left alone.
        """
        lines = code.split("\n")
        processed_lines = []
        statement: List[str] = []

        for number, line in enumerate(lines):
            if number == 0 and line.lstrip().startswith("%%"):
                logger.debug(f"Ignoring cell magic: {line.strip()}")
                processed_lines.append(f"# {line.strip()}")
                continue

            match = None if statement else _MAGIC_LINE_RE.match(line)
            if match:
                logger.debug(f"Ignoring IPython magic: {match.group(2)}")
                processed_lines.append(f"{match.group(1)}pass  # {match.group(2)}")
                continue

            processed_lines.append(line)
            statement.append(line)
            if _is_complete_statement("\n".join(statement) + "\n"):
                statement = []

        return "\n".join(processed_lines)

    def _format_traceback(self, exc: BaseException) -> List[str]:
        """Format a traceback starting at the cell's own frames."""
        tb = exc.__traceback__
        while tb is not None and tb.tb_frame.f_code.co_filename == __file__:
            tb = tb.tb_next
        return traceback.format_exception(type(exc), exc, tb)
