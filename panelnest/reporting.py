"""
Utilization, waste and cost metrics for nested layouts

Everything here is read-only over the layouts it is given; calling the
reporter twice on the same layouts gives the same numbers.
"""

from typing import Dict, List, Optional, Sequence

import pandas as pd

from .models import JobReport, Layout, Piece, Sheet
from .nesting import calculate_total_area


def naive_packing_cost(pieces: Sequence[Piece], sheets: Sequence[Sheet]) -> float:
    """
    Upper-bound baseline: one sheet per distinct piece type

    Each piece type is charged the cheapest candidate sheet that can hold
    it in an allowed orientation.
    """
    total = 0.0
    for piece in pieces:
        fitting = [
            s for s in sheets
            if any(s.admits(w, l) for _, w, l in piece.orientations())
        ]
        if fitting:
            total += min(s.unit_cost for s in fitting)
    return total


class UtilizationReporter:
    """Computes a JobReport from layouts"""

    def report(self, layouts: Sequence[Layout], pieces: Sequence[Piece] = (),
               candidates: Sequence[Sheet] = (), estimated_run_time: float = 0.0) -> JobReport:
        used_area, sheet_area = calculate_total_area(layouts)
        if sheet_area > 0:
            utilization = min(100.0, used_area / sheet_area * 100.0)
            waste = 100.0 - utilization
        else:
            utilization = 0.0
            waste = 0.0

        material_cost = sum(layout.sheet.unit_cost for layout in layouts)
        placed_ids = {p.piece_id for layout in layouts for p in layout.placements}
        placed_pieces = [p for p in pieces if p.id in placed_ids]
        baseline_sheets = list(candidates) or _distinct_stock(layouts)
        savings = naive_packing_cost(placed_pieces, baseline_sheets) - material_cost if placed_pieces else 0.0

        return JobReport(
            utilization_percent=utilization,
            waste_percentage=waste,
            material_cost=material_cost,
            estimated_savings=savings,
            estimated_run_time=estimated_run_time,
            sheet_count=len(layouts),
            used_area=used_area,
            sheet_area=sheet_area,
        )


def _distinct_stock(layouts: Sequence[Layout]) -> List[Sheet]:
    seen: Dict[str, Sheet] = {}
    for layout in layouts:
        seen.setdefault(layout.sheet.stock_id or layout.sheet.id, layout.sheet)
    return list(seen.values())


def cutting_list(pieces: Sequence[Piece], precision: int = 2) -> pd.DataFrame:
    """Generate cutting list DataFrame"""
    rows = []
    for p in pieces:
        rows.append({
            "Piece": p.id,
            "Name": p.name,
            "Width": round(p.width, precision),
            "Length": round(p.length, precision),
            "Quantity": p.quantity,
            "Total Area": round(p.area * p.quantity, precision),
            "Grain": "Yes" if p.grain_constrained else "No",
            "Rotation Allowed": "Yes" if p.allows_quarter_turn else "No",
            "Operations": len(p.operations),
        })
    return pd.DataFrame(rows, columns=[
        "Piece", "Name", "Width", "Length", "Quantity", "Total Area",
        "Grain", "Rotation Allowed", "Operations",
    ])


def layout_table(layouts: Sequence[Layout], precision: Optional[int] = None) -> pd.DataFrame:
    """One row per placement across all layouts"""
    rows = []
    for layout in layouts:
        for p in layout.placements:
            rows.append({
                "Layout": layout.layout_number,
                "Sheet": layout.sheet_id,
                "Stock": layout.sheet.stock_id,
                "Piece": p.piece_id,
                "X": p.x if precision is None else round(p.x, precision),
                "Y": p.y if precision is None else round(p.y, precision),
                "Width": p.width,
                "Length": p.length,
                "Rotation": p.rotation,
                "Flipped": p.flipped,
            })
    return pd.DataFrame(rows, columns=[
        "Layout", "Sheet", "Stock", "Piece", "X", "Y", "Width", "Length", "Rotation", "Flipped",
    ])
