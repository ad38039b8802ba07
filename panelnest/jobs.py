"""
Job lifecycle

A job moves Created -> PartsAdded -> Optimized -> GCodeGenerated ->
Exported. Any component failure parks it in Error; cancel() ends it in
Cancelled. Guard violations raise InvalidStateError and leave the job
untouched.
"""

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from .catalog import PieceCatalog
from .errors import ExportError, InvalidStateError, OptimizationCancelled
from .models import CuttingProgram, JobReport, Layout, Piece, PieceRequest, ToolOperation
from .nesting import CancellationToken

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    CREATED = "Created"
    PARTS_ADDED = "PartsAdded"
    OPTIMIZED = "Optimized"
    GCODE_GENERATED = "GCodeGenerated"
    EXPORTED = "Exported"
    ERROR = "Error"
    CANCELLED = "Cancelled"


TERMINAL_STATES = {JobState.EXPORTED, JobState.ERROR, JobState.CANCELLED}

_ALLOWED = {
    JobState.CREATED: {JobState.PARTS_ADDED, JobState.OPTIMIZED},
    JobState.PARTS_ADDED: {JobState.OPTIMIZED},
    JobState.OPTIMIZED: {JobState.GCODE_GENERATED},
    JobState.GCODE_GENERATED: {JobState.EXPORTED},
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Job(BaseModel):
    """A nesting job and everything computed for it"""
    id: str
    name: str = ""
    material_id: str
    thickness: float = Field(gt=0)
    pieces: List[Piece] = Field(default_factory=list)
    layouts: List[Layout] = Field(default_factory=list)
    operations: List[ToolOperation] = Field(default_factory=list)
    state: JobState = JobState.CREATED
    report: Optional[JobReport] = None
    program: Optional[CuttingProgram] = None
    created_at: datetime = Field(default_factory=_now)
    optimized_at: Optional[datetime] = None
    generated_at: Optional[datetime] = None
    exported_at: Optional[datetime] = None
    export_paths: Dict[str, str] = Field(default_factory=dict)
    last_error: Optional[str] = None


class JobObserver:
    """
    Receives job notifications

    Subclass and override what you need; observers are handed to the
    session at construction.
    """

    def on_state_changed(self, job: Job, previous: JobState, current: JobState) -> None:
        pass

    def on_optimized(self, job: Job, report: JobReport) -> None:
        pass

    def on_program_generated(self, job: Job, program: CuttingProgram) -> None:
        pass

    def on_tool_replacement(self, job: Job, message: str) -> None:
        pass


class JobStateMachine:
    """Owns one job and enforces the order of operations on it"""

    def __init__(self, job: Job, has_grain: bool = True, observers: Sequence[JobObserver] = ()):
        self.job = job
        self.catalog = PieceCatalog(has_grain=has_grain)
        self.observers = list(observers)
        self.cancel_token = CancellationToken()
        self._lock = threading.RLock()
        self._busy = False

    @property
    def state(self) -> JobState:
        return self.job.state

    # ------------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------------

    def _require(self, action: str, *states: JobState) -> None:
        if self.job.state not in states:
            raise InvalidStateError(self.job.id, action, self.job.state.value)

    def _transition(self, new_state: JobState) -> None:
        previous = self.job.state
        if previous == new_state:
            return
        if new_state in (JobState.ERROR, JobState.CANCELLED):
            if previous in TERMINAL_STATES:
                raise InvalidStateError(self.job.id, f"move to {new_state.value}", previous.value)
        elif new_state not in _ALLOWED.get(previous, set()):
            raise InvalidStateError(self.job.id, f"move to {new_state.value}", previous.value)
        self.job.state = new_state
        logger.info("Job %s: %s -> %s", self.job.id, previous.value, new_state.value)
        for observer in self.observers:
            observer.on_state_changed(self.job, previous, new_state)

    def _fail(self, action: str, error: Exception) -> None:
        self.job.last_error = str(error)
        logger.error("Job %s: %s failed: %s", self.job.id, action, error)
        self._transition(JobState.ERROR)

    def _start(self, action: str, *states: JobState) -> None:
        with self._lock:
            self._require(action, *states)
            self._busy = True

    def _finish(self) -> None:
        with self._lock:
            self._busy = False

    def _abort(self, state: JobState, action: str = "", error: Optional[Exception] = None) -> None:
        with self._lock:
            self._busy = False
            if state == JobState.ERROR:
                self._fail(action, error)
            else:
                self._transition(state)

    def _cancelled_late(self) -> bool:
        """A cancel that arrived after the last in-step check still wins"""
        if not self.cancel_token.cancelled:
            return False
        self._transition(JobState.CANCELLED)
        return True

    # ------------------------------------------------------------------------
    # pieces
    # ------------------------------------------------------------------------

    def add_piece(self, request: Union[PieceRequest, dict]) -> Piece:
        """Validation errors reject the piece without touching job state"""
        with self._lock:
            self._require("add a piece to", JobState.CREATED, JobState.PARTS_ADDED)
            piece = self.catalog.add_piece(request)
            self.job.pieces = self.catalog.pieces()
            if self.job.state == JobState.CREATED:
                self._transition(JobState.PARTS_ADDED)
            return piece

    def remove_piece(self, piece_id: str) -> Piece:
        with self._lock:
            self._require("remove a piece from", JobState.CREATED, JobState.PARTS_ADDED)
            piece = self.catalog.remove_piece(piece_id)
            self.job.pieces = self.catalog.pieces()
            return piece

    # ------------------------------------------------------------------------
    # pipeline steps
    # ------------------------------------------------------------------------

    def optimize(self, stock, optimizer, reporter) -> List[Layout]:
        """
        Nest the job's pieces

        A job with no pieces optimizes immediately to zero layouts. On
        failure no layouts are kept and the job moves to Error; on
        cancellation it moves to Cancelled.
        """
        self._start("optimize", JobState.CREATED, JobState.PARTS_ADDED)
        try:
            pieces = self.catalog.pieces()
            sheets = stock.candidate_sheets(self.job.material_id) if pieces else []
            layouts = optimizer.optimize(pieces, sheets, cancel_token=self.cancel_token, job_id=self.job.id)
            report = reporter.report(layouts, pieces, sheets)
        except OptimizationCancelled:
            self._abort(JobState.CANCELLED)
            raise
        except Exception as e:
            self._abort(JobState.ERROR, "optimize", e)
            raise

        with self._lock:
            self._busy = False
            if self._cancelled_late():
                raise OptimizationCancelled(f"Job '{self.job.id}' was cancelled", entity_id=self.job.id)
            self.job.layouts = list(layouts)
            self.job.report = report
            self.job.optimized_at = _now()
            self._transition(JobState.OPTIMIZED)
        for observer in self.observers:
            observer.on_optimized(self.job, report)
        return self.job.layouts

    def generate_program(self, builder) -> CuttingProgram:
        """Layouts stay inspectable when generation fails"""
        self._start("generate a program for", JobState.OPTIMIZED)
        try:
            program = builder.build(self.job.id, self.job.layouts, self.catalog.pieces(),
                                    self.job.thickness, cancel_token=self.cancel_token)
        except OptimizationCancelled:
            self._abort(JobState.CANCELLED)
            raise
        except Exception as e:
            self._abort(JobState.ERROR, "generate a program for", e)
            raise

        with self._lock:
            self._busy = False
            if self._cancelled_late():
                raise OptimizationCancelled(f"Job '{self.job.id}' was cancelled", entity_id=self.job.id)
            self.job.program = program
            self.job.operations = list(program.operations)
            if self.job.report is not None:
                self.job.report = self.job.report.model_copy(
                    update={"estimated_run_time": program.estimated_run_time})
            self.job.generated_at = _now()
            self._transition(JobState.GCODE_GENERATED)
        for message in program.replacement_warnings:
            for observer in self.observers:
                observer.on_tool_replacement(self.job, message)
        for observer in self.observers:
            observer.on_program_generated(self.job, program)
        return program

    def export(self, exporter) -> Dict[str, str]:
        """
        Write the job's artifacts

        Storage failures raise ExportError and leave the job in
        GCodeGenerated so the export can be retried.
        """
        self._start("export", JobState.GCODE_GENERATED)
        try:
            paths = exporter.export(self.job)
        except ExportError as e:
            self.job.last_error = str(e)
            logger.warning("Job %s: export failed, may be retried: %s", self.job.id, e)
            raise
        finally:
            self._finish()

        with self._lock:
            if self._cancelled_late():
                raise OptimizationCancelled(f"Job '{self.job.id}' was cancelled", entity_id=self.job.id)
            self.job.export_paths = dict(paths)
            self.job.exported_at = _now()
            self.job.last_error = None
            self._transition(JobState.EXPORTED)
        return self.job.export_paths

    def cancel(self) -> JobState:
        """
        Request cancellation

        A running step notices the signal at its next check and moves the
        job to Cancelled itself; an idle job is cancelled immediately.
        """
        with self._lock:
            if self.job.state in TERMINAL_STATES:
                raise InvalidStateError(self.job.id, "cancel", self.job.state.value)
            self.cancel_token.cancel()
            if not self._busy:
                self._transition(JobState.CANCELLED)
            return self.job.state
