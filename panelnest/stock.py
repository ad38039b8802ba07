"""
Sheet stock provider

The materials collaborator sits behind SheetStockProvider; the engine only
asks it for a material record and the candidate sheet sizes to cut from.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import NotFoundError, ValidationError
from .models import MaterialSpec, Sheet

logger = logging.getLogger(__name__)


class SheetStockProvider(ABC):
    """Read-only access to material records and stock sheet sizes"""

    @abstractmethod
    def material(self, material_id: str) -> MaterialSpec:
        """Return the material record or raise NotFoundError"""

    @abstractmethod
    def candidate_sheets(self, material_id: str) -> List[Sheet]:
        """Return the stock sizes available for a material, in catalog order"""


def validate_sheets(sheets: Iterable[Sheet]) -> List[Sheet]:
    """Check a candidate catalog is non-empty with unique ids"""
    sheets = list(sheets)
    if not sheets:
        raise ValidationError("Sheet catalog is empty")
    seen = set()
    for s in sheets:
        if s.id in seen:
            raise ValidationError(f"Duplicate sheet id '{s.id}' in catalog", entity_id=s.id)
        seen.add(s.id)
    return sheets


class StaticStockProvider(SheetStockProvider):
    """
    In-process stock provider

    Each material contributes its own sheet size; extra sizes can be
    registered per material (e.g. offcut racks or oversize stock).
    """

    def __init__(self, materials: Iterable[MaterialSpec] = ()):
        self._materials: Dict[str, MaterialSpec] = {}
        self._extra: Dict[str, List[Sheet]] = {}
        for m in materials:
            self.add_material(m)

    def add_material(self, material: MaterialSpec) -> None:
        self._materials[material.id] = material

    def add_sheet_size(self, material_id: str, width: float, length: float,
                       unit_cost: float, sheet_id: Optional[str] = None) -> Sheet:
        """Register another stock size for an existing material"""
        material = self.material(material_id)
        if width <= 0 or length <= 0 or unit_cost < 0:
            raise ValidationError(
                f"Invalid stock size {width} x {length} at cost {unit_cost} for '{material_id}'",
                entity_id=material_id,
            )
        sizes = self._extra.setdefault(material_id, [])
        sheet = Sheet(
            id=sheet_id or f"{material_id}-{len(sizes) + 2}",
            width=width,
            length=length,
            thickness=material.thickness,
            unit_cost=unit_cost,
        )
        sizes.append(sheet)
        logger.debug("Registered stock %s (%g x %g) for %s", sheet.id, width, length, material_id)
        return sheet

    def material(self, material_id: str) -> MaterialSpec:
        material = self._materials.get(material_id)
        if material is None:
            raise NotFoundError("Material", material_id)
        return material

    def candidate_sheets(self, material_id: str) -> List[Sheet]:
        material = self.material(material_id)
        primary = Sheet(
            id=f"{material_id}-1",
            width=material.sheet_width,
            length=material.sheet_length,
            thickness=material.thickness,
            unit_cost=material.unit_cost,
        )
        return validate_sheets([primary] + self._extra.get(material_id, []))

    @classmethod
    def single(cls, material_id: str, size: Tuple[float, float], thickness: float = 0.75,
               unit_cost: float = 0.0, has_grain: bool = True) -> "StaticStockProvider":
        """Provider holding one material with one sheet size"""
        return cls([MaterialSpec(
            id=material_id,
            name=material_id,
            sheet_width=size[0],
            sheet_length=size[1],
            thickness=thickness,
            unit_cost=unit_cost,
            has_grain=has_grain,
        )])
