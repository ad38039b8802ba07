"""
Data models for the panel nesting engine

Pydantic models for pieces, stock sheets, layouts, tools and the
tool-operation program produced from a nested job.
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, model_validator


EPS = 1e-9

QUARTER_TURNS = (90, 270)


class OperationType(str, Enum):
    """Kinds of machine action a program can contain"""
    CUT = "cut"
    DRILL = "drill"
    ROUTE = "route"
    POCKET = "pocket"


# ============================================================================
# PIECE TEMPLATES
# ============================================================================

class DrillTemplate(BaseModel):
    """Hole drilled at a piece-local position"""
    type: Literal["drill"] = "drill"
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    depth: float = Field(gt=0)
    diameter: Optional[float] = Field(None, gt=0)

    class Config:
        frozen = True


class RouteTemplate(BaseModel):
    """Straight routed groove from (x, y) to (x2, y2)"""
    type: Literal["route"] = "route"
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    x2: float = Field(ge=0)
    y2: float = Field(ge=0)
    depth: float = Field(gt=0)

    class Config:
        frozen = True


class PocketTemplate(BaseModel):
    """Rectangular pocket with its top-left corner at (x, y)"""
    type: Literal["pocket"] = "pocket"
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    width: float = Field(gt=0)
    length: float = Field(gt=0)
    depth: float = Field(gt=0)

    class Config:
        frozen = True


TemplateOperation = Annotated[
    Union[DrillTemplate, RouteTemplate, PocketTemplate],
    Field(discriminator="type"),
]


def template_extent(op) -> Tuple[float, float]:
    """Furthest piece-local (x, y) reached by a template operation"""
    if isinstance(op, RouteTemplate):
        return max(op.x, op.x2), max(op.y, op.y2)
    if isinstance(op, PocketTemplate):
        return op.x + op.width, op.y + op.length
    return op.x, op.y


# ============================================================================
# PIECES & STOCK
# ============================================================================

class Piece(BaseModel):
    """A rectangular panel requested by a job"""
    id: str
    name: str = ""
    width: float = Field(gt=0, description="Extent along the sheet width at rotation 0")
    length: float = Field(gt=0, description="Extent along the sheet length (grain axis)")
    quantity: int = Field(ge=1, description="Quantity must be at least 1")
    grain_constrained: bool = False
    allow_rotation: bool = False
    operations: Tuple[TemplateOperation, ...] = ()

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "CAB-001",
                "name": "Side Panel",
                "width": 24.0,
                "length": 84.0,
                "quantity": 2,
                "grain_constrained": True,
                "allow_rotation": False,
                "operations": [
                    {"type": "drill", "x": 2.0, "y": 2.0, "depth": 0.5, "diameter": 0.197}
                ]
            }
        }

    @property
    def area(self) -> float:
        return self.width * self.length

    @property
    def allows_quarter_turn(self) -> bool:
        """Whether 90/270 degree placements are permitted"""
        return not self.grain_constrained or self.allow_rotation

    def orientations(self) -> List[Tuple[int, float, float]]:
        """Candidate (rotation, footprint width, footprint length) in preference order"""
        options = [(0, self.width, self.length)]
        if self.allows_quarter_turn and abs(self.width - self.length) > EPS:
            options.append((90, self.length, self.width))
        return options


class MaterialSpec(BaseModel):
    """Material catalog entry consumed from the materials collaborator"""
    id: str
    name: str = ""
    sheet_width: float = Field(gt=0)
    sheet_length: float = Field(gt=0)
    thickness: float = Field(gt=0)
    unit_cost: float = Field(ge=0)
    has_grain: bool = True

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "MAT-PLY-18",
                "name": "Birch plywood 3/4",
                "sheet_width": 48.0,
                "sheet_length": 96.0,
                "thickness": 0.75,
                "unit_cost": 68.5,
                "has_grain": True
            }
        }


class Sheet(BaseModel):
    """A candidate stock size, or one consumed stock unit"""
    id: str
    width: float = Field(gt=0)
    length: float = Field(gt=0)
    thickness: float = Field(gt=0)
    unit_cost: float = Field(ge=0)
    stock_id: str = ""

    class Config:
        frozen = True

    @property
    def area(self) -> float:
        return self.width * self.length

    def admits(self, width: float, length: float) -> bool:
        return width <= self.width + EPS and length <= self.length + EPS


# ============================================================================
# LAYOUTS
# ============================================================================

class PlacedPiece(BaseModel):
    """One placement unit positioned on a sheet (top-left, sheet-local)"""
    piece_id: str
    sheet_id: str
    x: float = Field(ge=0)
    y: float = Field(ge=0)
    rotation: Literal[0, 90, 180, 270] = 0
    flipped: bool = False
    width: float = Field(gt=0, description="Footprint width after rotation")
    length: float = Field(gt=0, description="Footprint length after rotation")

    class Config:
        frozen = True

    @property
    def area(self) -> float:
        return self.width * self.length

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x + self.width, self.y + self.length


class Layout(BaseModel):
    """Placements on a single consumed sheet"""
    layout_number: int = Field(ge=1)
    sheet: Sheet
    placements: Tuple[PlacedPiece, ...] = ()
    utilization_percent: float = Field(ge=0, le=100)

    class Config:
        frozen = True

    @property
    def sheet_id(self) -> str:
        return self.sheet.id

    @property
    def used_area(self) -> float:
        return sum(p.area for p in self.placements)

    def export_record(self) -> dict:
        """Layout artifact: sheet id and {pieceId, x, y, rotation, flipped} entries"""
        return {
            "sheet_id": self.sheet.id,
            "stock_id": self.sheet.stock_id,
            "sheet_width": self.sheet.width,
            "sheet_length": self.sheet.length,
            "utilization_percent": self.utilization_percent,
            "placements": [
                {
                    "piece_id": p.piece_id,
                    "x": p.x,
                    "y": p.y,
                    "rotation": p.rotation,
                    "flipped": p.flipped,
                }
                for p in self.placements
            ],
        }


# ============================================================================
# TOOLS & OPERATIONS
# ============================================================================

class Tool(BaseModel):
    """Tool catalog entry with life tracking"""
    id: str
    number: int = Field(ge=1, description="Tool magazine position (T-word)")
    type: OperationType
    diameter: float = Field(gt=0)
    feed_rate: float = Field(gt=0, description="Cutting feed, length units per minute")
    spindle_speed: float = Field(gt=0, description="RPM")
    life_minutes: float = Field(gt=0)
    used_minutes: float = Field(0.0, ge=0)
    max_depth: float = Field(gt=0, description="Deepest cut the tool can take")
    needs_replacement: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "id": "EM-10",
                "number": 1,
                "type": "cut",
                "diameter": 0.375,
                "feed_rate": 600.0,
                "spindle_speed": 18000,
                "life_minutes": 480,
                "used_minutes": 0,
                "max_depth": 1.5
            }
        }


class _OperationBase(BaseModel):
    sequence_number: int = Field(ge=1)
    tool_id: str
    piece_id: str
    sheet_id: str
    x: float
    y: float
    z: float
    depth: float = Field(gt=0)
    feed_rate: float = Field(gt=0)
    spindle_speed: float = Field(gt=0)
    travel: float = Field(ge=0, description="Cutting distance at feed")

    class Config:
        frozen = True


class CutOperation(_OperationBase):
    """Perimeter profile around a placed piece"""
    type: Literal["cut"] = "cut"
    width: float = Field(gt=0)
    length: float = Field(gt=0)


class DrillOperation(_OperationBase):
    type: Literal["drill"] = "drill"
    diameter: float = Field(gt=0)


class RouteOperation(_OperationBase):
    type: Literal["route"] = "route"
    x2: float
    y2: float


class PocketOperation(_OperationBase):
    type: Literal["pocket"] = "pocket"
    width: float = Field(gt=0)
    length: float = Field(gt=0)


ToolOperation = Annotated[
    Union[CutOperation, DrillOperation, RouteOperation, PocketOperation],
    Field(discriminator="type"),
]


class CuttingProgram(BaseModel):
    """Ordered tool operations for a job plus run-time bookkeeping"""
    job_id: str
    operations: List[ToolOperation] = Field(default_factory=list)
    tool_changes: int = 0
    estimated_run_time: float = Field(0.0, ge=0, description="Minutes")
    replacement_warnings: List[str] = Field(default_factory=list)


class JobReport(BaseModel):
    """Utilization and cost metrics for a job's layouts"""
    utilization_percent: float = Field(ge=0, le=100)
    waste_percentage: float = Field(ge=0, le=100)
    material_cost: float = Field(ge=0)
    estimated_savings: float
    estimated_run_time: float = Field(0.0, ge=0)
    sheet_count: int = 0
    used_area: float = 0.0
    sheet_area: float = 0.0


class PieceRequest(BaseModel):
    """Raw piece request before catalog validation"""
    id: Optional[str] = None
    name: str = ""
    width: float
    length: float
    quantity: int = 1
    grain_constrained: bool = False
    allow_rotation: bool = False
    operations: List[TemplateOperation] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_height_alias(cls, data):
        # callers coming from the 2D nesting UI send "height" and "qty"
        if isinstance(data, dict):
            data = dict(data)
            if "length" not in data and "height" in data:
                data["length"] = data.pop("height")
            if "quantity" not in data and "qty" in data:
                data["quantity"] = data.pop("qty")
        return data
