"""
Data models for notebook execution.

These Pydantic models describe what happened when a notebook's code cells were run:
per-cell results with captured text and error information, and the summary for
the whole notebook.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    """Status of cell execution."""
    SUCCESS = "success"      # Executed successfully
    ERROR = "error"          # Execution failed
    SKIPPED = "skipped"      # Empty cell, nothing to run


class ExecutionResult(BaseModel):
    """Result of executing a single code cell."""

    cell_index: int
    execution_count: Optional[int] = None
    status: ExecutionStatus = ExecutionStatus.SUCCESS
    stdout: str = ""
    stderr: str = ""
    execution_time: float = 0.0

    # Number of outputs attached to the cell, and how many of them are figures
    output_count: int = 0
    figure_count: int = 0

    # Error information
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    traceback: Optional[str] = None


class NotebookExecutionResult(BaseModel):
    """Summary of a fully executed notebook."""

    name: str
    source_path: Path
    output_path: Path
    seed: int
    started_at: datetime = Field(default_factory=datetime.now)
    execution_time: float = 0.0
    cells: List[ExecutionResult] = Field(default_factory=list)

    # Set when a cell raised without being allowed to; execution stopped there
    failed_cell_index: Optional[int] = None

    @property
    def failure(self) -> Optional[ExecutionResult]:
        """The cell result that stopped execution, if any."""
        if self.failed_cell_index is None:
            return None
        return next(cell for cell in self.cells if cell.cell_index == self.failed_cell_index)

    @property
    def error_count(self) -> int:
        """Cells that raised but were allowed to (tagged raises-exception)."""
        return sum(
            1 for cell in self.cells
            if cell.status == ExecutionStatus.ERROR and cell.cell_index != self.failed_cell_index
        )
