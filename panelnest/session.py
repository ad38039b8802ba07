"""
Nesting session

Explicit context object that wires the stock provider, tool catalog,
native engine and configuration together and owns the jobs created in it.
Components receive what they need from the session instead of reading
process-wide state.
"""

import logging
import threading
from typing import Dict, List, Optional, Sequence, Union

from .cnc import CNCProgramBuilder, to_nc_text
from .config import EngineConfig
from .engine import FileSystemEngine, NativeEngine
from .errors import NestingEngineError, NotFoundError
from .export import JobExporter
from .jobs import Job, JobObserver, JobState, JobStateMachine
from .models import CuttingProgram, JobReport, Layout, Piece, PieceRequest
from .nesting import NestingOptimizer
from .reporting import UtilizationReporter
from .stock import SheetStockProvider
from .tools import ToolCatalog

logger = logging.getLogger(__name__)


class NestingSession:
    """
    Owns jobs and the shared collaborators they run against

    Use as a context manager, or call start() and shutdown() explicitly.
    Distinct jobs may be driven from different threads; the only shared
    mutable state is the tool catalog, which serializes its own updates.
    """

    def __init__(self, stock: SheetStockProvider, tools: ToolCatalog,
                 engine: Optional[NativeEngine] = None, config: Optional[EngineConfig] = None,
                 observers: Sequence[JobObserver] = ()):
        self.config = config or EngineConfig()
        self.stock = stock
        self.tools = tools
        self.engine = engine or FileSystemEngine(self.config.export_dir)
        self.observers = list(observers)

        self.optimizer = NestingOptimizer(self.config)
        self.reporter = UtilizationReporter()
        self.builder = CNCProgramBuilder(self.tools, self.config)
        self.exporter = JobExporter(self.engine, self.tools, self.config)

        self._machines: Dict[str, JobStateMachine] = {}
        self._lock = threading.Lock()
        self._next_job = 1
        self._started = False

    # ------------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------------

    def start(self) -> "NestingSession":
        if not self._started:
            self.engine.initialize()
            self._started = True
            logger.info("Nesting session started (%s engine, %d tools)", self.engine.name, len(self.tools))
        return self

    def shutdown(self) -> None:
        if self._started:
            self.engine.shutdown()
            self._started = False
            logger.info("Nesting session shut down")

    def __enter__(self) -> "NestingSession":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _require_started(self) -> None:
        if not self._started:
            raise NestingEngineError("Nesting session not started")

    # ------------------------------------------------------------------------
    # jobs
    # ------------------------------------------------------------------------

    def create_job(self, material_id: str, thickness: Optional[float] = None, name: str = "",
                   job_id: Optional[str] = None) -> Job:
        """Create a job for one material; thickness defaults to the material's"""
        self._require_started()
        material = self.stock.material(material_id)
        with self._lock:
            if job_id is None:
                job_id = f"JOB-{self._next_job:04d}"
                self._next_job += 1
            if job_id in self._machines:
                raise NestingEngineError(f"Job with ID '{job_id}' already exists", entity_id=job_id)
            job = Job(
                id=job_id,
                name=name or job_id,
                material_id=material_id,
                thickness=thickness if thickness is not None else material.thickness,
            )
            machine = JobStateMachine(job, has_grain=material.has_grain, observers=self.observers)
            self._machines[job_id] = machine
        logger.info("Created job %s for material %s", job_id, material_id)
        return job

    def machine(self, job_id: str) -> JobStateMachine:
        with self._lock:
            machine = self._machines.get(job_id)
        if machine is None:
            raise NotFoundError("Job", job_id)
        return machine

    def get_job(self, job_id: str) -> Job:
        return self.machine(job_id).job

    def jobs(self) -> List[Job]:
        with self._lock:
            return [m.job for m in self._machines.values()]

    def add_piece(self, job_id: str, request: Union[PieceRequest, dict]) -> Piece:
        return self.machine(job_id).add_piece(request)

    def remove_piece(self, job_id: str, piece_id: str) -> Piece:
        return self.machine(job_id).remove_piece(piece_id)

    def optimize(self, job_id: str) -> List[Layout]:
        self._require_started()
        return self.machine(job_id).optimize(self.stock, self.optimizer, self.reporter)

    def generate_program(self, job_id: str) -> CuttingProgram:
        self._require_started()
        return self.machine(job_id).generate_program(self.builder)

    def export(self, job_id: str) -> Dict[str, str]:
        self._require_started()
        return self.machine(job_id).export(self.exporter)

    def cancel(self, job_id: str) -> JobState:
        return self.machine(job_id).cancel()

    def run(self, job_id: str) -> Job:
        """Optimize, generate and export in one go"""
        self.optimize(job_id)
        self.generate_program(job_id)
        self.export(job_id)
        return self.get_job(job_id)

    # ------------------------------------------------------------------------
    # read-only views
    # ------------------------------------------------------------------------

    def report(self, job_id: str) -> JobReport:
        """Metrics recomputed from the job's current layouts"""
        job = self.get_job(job_id)
        candidates = self.stock.candidate_sheets(job.material_id) if job.pieces else []
        run_time = job.program.estimated_run_time if job.program is not None else 0.0
        return self.reporter.report(job.layouts, job.pieces, candidates, run_time)

    def program_text(self, job_id: str) -> str:
        job = self.get_job(job_id)
        if job.program is None:
            raise NestingEngineError(f"Job '{job_id}' has no program yet", entity_id=job_id)
        return to_nc_text(job.program, self.tools, self.config)
