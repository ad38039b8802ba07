"""
Engine configuration

Settings shared by the optimizer, program builder and exporter.
"""

import json
from pathlib import Path
from typing import Union

from pydantic import BaseModel, Field


class EngineConfig(BaseModel):
    """Configuration for nesting and program generation"""
    units: str = Field("in", description="'in' or 'mm'")
    precision: int = Field(3, ge=0, le=6)
    clearance: float = Field(0.0, ge=0, description="Gap left between neighbouring pieces")
    tool_change_minutes: float = Field(0.5, ge=0, description="Setup overhead per tool change")
    rapid_feed_rate: float = Field(1200.0, gt=0, description="Rapid traverse, units per minute")
    safe_z: float = Field(0.25, ge=0, description="Retract height above the sheet")
    breakthrough: float = Field(0.0, ge=0, description="Extra depth of perimeter cuts below the sheet")
    pocket_stepover: float = Field(0.5, gt=0, le=1, description="Pocket step-over as a fraction of tool diameter")
    export_dir: str = "exports"

    class Config:
        json_schema_extra = {
            "example": {
                "units": "in",
                "precision": 3,
                "clearance": 0.25,
                "tool_change_minutes": 0.5,
                "rapid_feed_rate": 1200.0,
                "safe_z": 0.25,
                "breakthrough": 0.02,
                "pocket_stepover": 0.5,
                "export_dir": "exports"
            }
        }

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "EngineConfig":
        """Load a JSON config file; missing keys keep their defaults"""
        with open(path, "r", encoding="utf-8") as fh:
            return cls(**json.load(fh))
