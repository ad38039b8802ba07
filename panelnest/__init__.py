"""
Panel nesting and cutting-program engine

Nests rectangular panels onto stock sheets, builds the tool-operation
program that cuts them and reports utilization, waste and cost.
"""

import logging

from .catalog import PieceCatalog
from .cnc import CNCProgramBuilder, to_nc_text
from .config import EngineConfig
from .engine import FileSystemEngine, InMemoryEngine, NativeEngine
from .errors import (
    ExportError,
    InvalidStateError,
    NestingEngineError,
    NoSuitableToolError,
    NotFoundError,
    OptimizationCancelled,
    PieceTooLargeError,
    ValidationError,
)
from .jobs import Job, JobObserver, JobState, JobStateMachine
from .models import (
    CuttingProgram,
    JobReport,
    Layout,
    MaterialSpec,
    OperationType,
    Piece,
    PieceRequest,
    PlacedPiece,
    Sheet,
    Tool,
)
from .nesting import CancellationToken, NestingOptimizer, shelf_nest, verify_layouts
from .reporting import UtilizationReporter
from .session import NestingSession
from .stock import SheetStockProvider, StaticStockProvider
from .tools import ToolCatalog

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "1.0.0"
