"""
Job artifact export

Writes the layout artifact, the NC program, the metrics report and the
cutting lists for a job through the native engine.
"""

import json
import logging
from typing import Dict, Optional

from .cnc import to_nc_text
from .config import EngineConfig
from .engine import NativeEngine
from .errors import ExportError
from .reporting import cutting_list, layout_table
from .tools import ToolCatalog

logger = logging.getLogger(__name__)


def layouts_json(job) -> str:
    """Layout artifact: one record per consumed sheet"""
    return json.dumps({
        "job_id": job.id,
        "material_id": job.material_id,
        "thickness": job.thickness,
        "layouts": [layout.export_record() for layout in job.layouts],
    }, indent=2)


def report_json(job) -> str:
    report = job.report.model_dump() if job.report is not None else {}
    return json.dumps({"job_id": job.id, **report}, indent=2)


class JobExporter:
    """Renders a job's artifacts and stores them through an engine"""

    def __init__(self, engine: NativeEngine, tools: ToolCatalog, config: Optional[EngineConfig] = None):
        self.engine = engine
        self.tools = tools
        self.config = config or EngineConfig()

    def render(self, job) -> Dict[str, str]:
        """Artifact name -> content"""
        if job.program is None:
            raise ExportError(f"Job '{job.id}' has no program to export", entity_id=job.id)
        prec = self.config.precision
        return {
            f"{job.id}_layouts.json": layouts_json(job),
            f"{job.id}.nc": to_nc_text(job.program, self.tools, self.config),
            f"{job.id}_report.json": report_json(job),
            f"{job.id}_cutlist.csv": cutting_list(job.pieces, prec).to_csv(index=False),
            f"{job.id}_placements.csv": layout_table(job.layouts, prec).to_csv(index=False),
        }

    def export(self, job) -> Dict[str, str]:
        """
        Write all artifacts; returns artifact name -> stored location

        Any storage failure becomes ExportError. Rendering is pure, so a
        failed export can simply be run again.
        """
        artifacts = self.render(job)
        locations: Dict[str, str] = {}
        for name, content in artifacts.items():
            try:
                locations[name] = self.engine.write_artifact(name, content)
            except OSError as e:
                raise ExportError(f"Failed to write {name} for job '{job.id}': {e}", entity_id=job.id) from e
        logger.info("Exported %d artifact(s) for job %s", len(locations), job.id)
        return locations
