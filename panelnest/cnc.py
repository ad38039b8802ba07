"""
Tool-operation program generation

Turns nested layouts into an ordered list of machine operations: interior
template work (drill, route, pocket) for each placed piece followed by its
perimeter cut. Pieces are visited row by row (ascending y, then x) on each
sheet so the order never depends on placement history.
"""

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from shapely.geometry import box as shp_box

from .config import EngineConfig
from .errors import NoSuitableToolError, NotFoundError
from .models import (
    CutOperation,
    CuttingProgram,
    DrillOperation,
    DrillTemplate,
    Layout,
    OperationType,
    Piece,
    PlacedPiece,
    PocketOperation,
    PocketTemplate,
    RouteOperation,
    RouteTemplate,
    Tool,
)
from .nesting import CancellationToken
from .tools import ToolCatalog

logger = logging.getLogger(__name__)


# ============================================================================
# GEOMETRY
# ============================================================================

def to_sheet(u: float, v: float, piece: Piece, placed: PlacedPiece) -> Tuple[float, float]:
    """
    Map a piece-local point into sheet coordinates

    Local coordinates are measured from the piece's top-left corner at
    rotation 0. Flipping mirrors across the piece's vertical centre line
    before the rotation is applied.
    """
    w, l = piece.width, piece.length
    if placed.flipped:
        u = w - u
    if placed.rotation == 90:
        u, v = l - v, u
    elif placed.rotation == 180:
        u, v = w - u, l - v
    elif placed.rotation == 270:
        u, v = v, w - u
    return placed.x + u, placed.y + v


def row_major(placements: Sequence[PlacedPiece]) -> List[PlacedPiece]:
    return sorted(placements, key=lambda p: (p.y, p.x))


def pocket_travel(width: float, length: float, tool_diameter: float, stepover: float) -> float:
    """Zig-zag path length clearing a width x length pocket"""
    step = tool_diameter * stepover
    rows = max(1, math.ceil(length / step))
    return rows * width + (rows - 1) * step


# ============================================================================
# PROGRAM BUILDER
# ============================================================================

class CNCProgramBuilder:
    """Builds cutting programs and books tool usage in the shared catalog"""

    def __init__(self, tools: ToolCatalog, config: Optional[EngineConfig] = None):
        self.tools = tools
        self.config = config or EngineConfig()

    def _tool_for(self, op_type: OperationType, depth: float, piece_id: str,
                  diameter: Optional[float] = None) -> Tool:
        tool = self.tools.select(op_type, depth, diameter)
        if tool is None:
            raise NoSuitableToolError(op_type.value, depth, piece_id)
        return tool

    def _piece_operations(self, piece: Piece, placed: PlacedPiece, thickness: float) -> List[dict]:
        """Operation fields for one placed piece, without sequence numbers"""
        ops: List[dict] = []

        for tpl in piece.operations:
            x, y = to_sheet(tpl.x, tpl.y, piece, placed)
            common = {"piece_id": piece.id, "sheet_id": placed.sheet_id, "depth": tpl.depth, "z": -tpl.depth}
            if isinstance(tpl, DrillTemplate):
                tool = self._tool_for(OperationType.DRILL, tpl.depth, piece.id, tpl.diameter)
                ops.append(dict(common, cls=DrillOperation, tool=tool, x=x, y=y,
                                diameter=tpl.diameter or tool.diameter, travel=tpl.depth))
            elif isinstance(tpl, RouteTemplate):
                tool = self._tool_for(OperationType.ROUTE, tpl.depth, piece.id)
                x2, y2 = to_sheet(tpl.x2, tpl.y2, piece, placed)
                ops.append(dict(common, cls=RouteOperation, tool=tool, x=x, y=y, x2=x2, y2=y2,
                                travel=math.hypot(x2 - x, y2 - y)))
            elif isinstance(tpl, PocketTemplate):
                tool = self._tool_for(OperationType.POCKET, tpl.depth, piece.id)
                cx, cy = to_sheet(tpl.x + tpl.width, tpl.y + tpl.length, piece, placed)
                left, top = min(x, cx), min(y, cy)
                pw, pl = abs(cx - x), abs(cy - y)
                ops.append(dict(common, cls=PocketOperation, tool=tool, x=left, y=top, width=pw, length=pl,
                                travel=pocket_travel(pw, pl, tool.diameter, self.config.pocket_stepover)))

        depth = thickness + self.config.breakthrough
        tool = self._tool_for(OperationType.CUT, depth, piece.id)
        outline = shp_box(*placed.bounds)
        ops.append({
            "cls": CutOperation, "tool": tool, "piece_id": piece.id, "sheet_id": placed.sheet_id,
            "x": placed.x, "y": placed.y, "z": -depth, "depth": depth,
            "width": placed.width, "length": placed.length, "travel": outline.length,
        })
        return ops

    def build(self, job_id: str, layouts: Sequence[Layout], pieces: Sequence[Piece], thickness: float,
              cancel_token: Optional[CancellationToken] = None) -> CuttingProgram:
        """
        Generate the operation program for a job's layouts

        Tool selection for every operation happens before any usage is
        booked, so a NoSuitableToolError or a cancellation seen before
        booking leaves tool counters untouched.
        """
        by_id: Dict[str, Piece] = {p.id: p for p in pieces}

        planned: List[dict] = []
        for layout in layouts:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled(job_id)
            for placed in row_major(layout.placements):
                piece = by_id.get(placed.piece_id)
                if piece is None:
                    raise NotFoundError("Piece", placed.piece_id)
                planned.extend(self._piece_operations(piece, placed, thickness))

        operations = []
        warnings: List[str] = []
        for seq, fields in enumerate(planned, start=1):
            fields = dict(fields)
            cls = fields.pop("cls")
            tool = fields.pop("tool")
            operations.append(cls(
                sequence_number=seq,
                tool_id=tool.id,
                feed_rate=tool.feed_rate,
                spindle_speed=tool.spindle_speed,
                **fields,
            ))

        if cancel_token is not None:
            cancel_token.raise_if_cancelled(job_id)
        for op in operations:
            _, newly_worn = self.tools.record_usage(op.tool_id, op.travel / op.feed_rate)
            if newly_worn:
                warnings.append(f"Tool {op.tool_id} needs replacement after operation {op.sequence_number}")

        tool_changes = count_tool_changes(operations)
        run_time = estimate_run_time(operations, self.config)
        logger.info(
            "Job %s: %d operations, %d tool change(s), %.2f min estimated",
            job_id, len(operations), tool_changes, run_time,
        )
        return CuttingProgram(
            job_id=job_id,
            operations=operations,
            tool_changes=tool_changes,
            estimated_run_time=run_time,
            replacement_warnings=warnings,
        )


# ============================================================================
# RUN TIME
# ============================================================================

def count_tool_changes(operations: Sequence) -> int:
    """Number of times consecutive operations switch tool"""
    return sum(1 for prev, cur in zip(operations, operations[1:]) if prev.tool_id != cur.tool_id)


def _end_point(op) -> Tuple[float, float]:
    if isinstance(op, RouteOperation):
        return op.x2, op.y2
    return op.x, op.y


def rapid_travel(operations: Sequence) -> float:
    """XY rapid distance between operations; each sheet starts at the origin"""
    total = 0.0
    position = (0.0, 0.0)
    sheet_id = None
    for op in operations:
        if op.sheet_id != sheet_id:
            position = (0.0, 0.0)
            sheet_id = op.sheet_id
        total += math.hypot(op.x - position[0], op.y - position[1])
        position = _end_point(op)
    return total


def estimate_run_time(operations: Sequence, config: EngineConfig) -> float:
    """Minutes: cutting travel at feed, rapids at the rapid rate, plus tool changes"""
    cutting = sum(op.travel / op.feed_rate for op in operations)
    rapids = rapid_travel(operations) / config.rapid_feed_rate
    return cutting + rapids + count_tool_changes(operations) * config.tool_change_minutes


# ============================================================================
# NC TEXT
# ============================================================================

def to_nc_text(program: CuttingProgram, tools: ToolCatalog, config: Optional[EngineConfig] = None) -> str:
    """
    Serialize a program as generic numeric-control text

    Coordinates are sheet-local with the origin at the sheet's top-left
    corner and Z = 0 on the sheet surface.
    """
    config = config or EngineConfig()
    prec = config.precision

    def f(v: float) -> str:
        return f"{v:.{prec}f}"

    safe = f(config.safe_z)
    lines = [
        "%",
        f"(PROGRAM {program.job_id})",
        f"(OPERATIONS {len(program.operations)} TOOL CHANGES {program.tool_changes})",
        f"(EST RUN TIME {program.estimated_run_time:.2f} MIN)",
        "G20" if config.units == "in" else "G21",
        "G90",
    ]

    current_tool = None
    for op in program.operations:
        if op.tool_id != current_tool:
            tool = tools.get(op.tool_id)
            lines.append(f"T{tool.number} M06 ({tool.id})")
            lines.append(f"S{op.spindle_speed:.0f} M03")
            current_tool = op.tool_id

        n = f"N{op.sequence_number}"
        feed = f"F{op.feed_rate:.0f}"
        if isinstance(op, DrillOperation):
            lines.append(f"{n} G81 X{f(op.x)} Y{f(op.y)} Z{f(op.z)} R{safe} {feed}")
            lines.append("G80")
            continue

        lines.append(f"{n} G00 X{f(op.x)} Y{f(op.y)} Z{safe}")
        lines.append(f"G01 Z{f(op.z)} {feed}")
        if isinstance(op, CutOperation):
            x2, y2 = op.x + op.width, op.y + op.length
            for px, py in ((x2, op.y), (x2, y2), (op.x, y2), (op.x, op.y)):
                lines.append(f"G01 X{f(px)} Y{f(py)}")
        elif isinstance(op, RouteOperation):
            lines.append(f"G01 X{f(op.x2)} Y{f(op.y2)}")
        elif isinstance(op, PocketOperation):
            tool = tools.get(op.tool_id)
            step = tool.diameter * config.pocket_stepover
            rows = max(1, math.ceil(op.length / step))
            for row in range(rows):
                y = min(op.y + row * step, op.y + op.length)
                start, end = (op.x, op.x + op.width) if row % 2 == 0 else (op.x + op.width, op.x)
                if row:
                    lines.append(f"G01 X{f(start)} Y{f(y)}")
                lines.append(f"G01 X{f(end)} Y{f(y)}")
        lines.append(f"G00 Z{safe}")

    lines.extend(["M05", "M30", "%"])
    return "\n".join(lines) + "\n"
