"""
Shelf nesting of rectangular pieces onto stock sheets

Pieces are expanded into one placement unit per requested copy, sorted
largest first and packed left-to-right in horizontal shelves. Sheets are
opened lazily, always choosing the smallest stock size that can take the
unit being placed. The result is fully determined by the piece list and
the sheet catalog.
"""

import logging
import threading
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple

from shapely.geometry import box as shp_box

from .config import EngineConfig
from .errors import NestingEngineError, OptimizationCancelled, PieceTooLargeError
from .models import EPS, QUARTER_TURNS, Layout, Piece, PlacedPiece, Sheet
from .stock import validate_sheets

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a running job"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, job_id: Optional[str] = None) -> None:
        if self._event.is_set():
            raise OptimizationCancelled(f"Job '{job_id}' was cancelled", entity_id=job_id)


# ============================================================================
# PLACEMENT UNITS
# ============================================================================

def expand_units(pieces: Sequence[Piece]) -> List[Piece]:
    """
    One entry per requested copy, in packing order

    Order is area descending, ties broken by ascending piece id.
    """
    units: List[Piece] = []
    for p in pieces:
        units.extend([p] * p.quantity)
    units.sort(key=lambda p: (-p.area, p.id))
    return units


def smallest_admitting_sheet(piece: Piece, sheets: Sequence[Sheet]) -> Optional[Sheet]:
    """Smallest candidate (area, width, length, catalog order) holding the piece in an allowed orientation"""
    ranked = sorted(enumerate(sheets), key=lambda item: (item[1].area, item[1].width, item[1].length, item[0]))
    for _, sheet in ranked:
        if any(sheet.admits(w, l) for _, w, l in piece.orientations()):
            return sheet
    return None


def check_fit(pieces: Sequence[Piece], sheets: Sequence[Sheet]) -> None:
    """Raise PieceTooLargeError for the first piece (packing order) no sheet can hold"""
    for p in sorted(pieces, key=lambda p: (-p.area, p.id)):
        if smallest_admitting_sheet(p, sheets) is None:
            raise PieceTooLargeError(p.id, p.width, p.length)


# ============================================================================
# SHELF PACKING
# ============================================================================

class _OpenSheet:
    """A consumed sheet being filled shelf by shelf"""

    def __init__(self, sheet: Sheet, clearance: float):
        self.sheet = sheet
        self.clearance = clearance
        self.placements: List[PlacedPiece] = []
        self.shelf_y = 0.0
        self.shelf_height = 0.0
        self.cursor_x = 0.0
        self.shelf_count = 0

    def _fits_current(self, w: float, l: float) -> bool:
        if self.cursor_x + w > self.sheet.width + EPS:
            return False
        if self.shelf_y + l > self.sheet.length + EPS:
            return False
        return self.shelf_count == 0 or l <= self.shelf_height + EPS

    def _next_shelf_y(self) -> float:
        return self.shelf_y + self.shelf_height + self.clearance

    def _fits_new_shelf(self, w: float, l: float) -> bool:
        return w <= self.sheet.width + EPS and self._next_shelf_y() + l <= self.sheet.length + EPS

    def _place(self, piece: Piece, rotation: int, w: float, l: float) -> PlacedPiece:
        placed = PlacedPiece(
            piece_id=piece.id,
            sheet_id=self.sheet.id,
            x=self.cursor_x,
            y=self.shelf_y,
            rotation=rotation,
            flipped=False,
            width=w,
            length=l,
        )
        self.placements.append(placed)
        self.cursor_x += w + self.clearance
        self.shelf_height = max(self.shelf_height, l)
        self.shelf_count += 1
        return placed

    def try_place(self, piece: Piece) -> Optional[PlacedPiece]:
        """Current shelf first, then a new shelf below it"""
        orientations = piece.orientations()
        for rotation, w, l in orientations:
            if self._fits_current(w, l):
                return self._place(piece, rotation, w, l)
        if self.shelf_count == 0:
            return None
        for rotation, w, l in orientations:
            if self._fits_new_shelf(w, l):
                self.shelf_y = self._next_shelf_y()
                self.shelf_height = 0.0
                self.cursor_x = 0.0
                self.shelf_count = 0
                return self._place(piece, rotation, w, l)
        return None


def utilization_of(placements: Sequence[PlacedPiece], sheet: Sheet) -> float:
    used = sum(p.area for p in placements)
    return min(100.0, max(0.0, used / sheet.area * 100.0))


def shelf_nest(pieces: Sequence[Piece], sheets: Sequence[Sheet], clearance: float = 0.0,
               cancel_token: Optional[CancellationToken] = None,
               job_id: Optional[str] = None) -> List[Layout]:
    """
    Pack pieces onto the fewest sheets the shelf heuristic finds

    Returns one Layout per consumed sheet, in the order sheets were opened.
    Raises PieceTooLargeError before placing anything if some piece can
    never fit, and OptimizationCancelled if the token fires mid-way.
    """
    sheets = validate_sheets(sheets)
    check_fit(pieces, sheets)

    open_sheets: List[_OpenSheet] = []
    for unit in expand_units(pieces):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled(job_id)

        placed = None
        for target in open_sheets:
            placed = target.try_place(unit)
            if placed is not None:
                break

        if placed is None:
            stock = smallest_admitting_sheet(unit, sheets)
            consumed = stock.model_copy(update={
                "id": f"SHEET-{len(open_sheets) + 1:03d}",
                "stock_id": stock.id,
            })
            target = _OpenSheet(consumed, clearance)
            open_sheets.append(target)
            placed = target.try_place(unit)
            if placed is None:
                # smallest_admitting_sheet guarantees an empty sheet takes the unit
                raise NestingEngineError(f"Empty sheet {consumed.id} rejected piece '{unit.id}'", unit.id)
            logger.debug("Opened %s (%s) for piece %s", consumed.id, stock.id, unit.id)

    layouts: List[Layout] = []
    for number, target in enumerate(open_sheets, start=1):
        if cancel_token is not None:
            cancel_token.raise_if_cancelled(job_id)
        layouts.append(Layout(
            layout_number=number,
            sheet=target.sheet,
            placements=tuple(target.placements),
            utilization_percent=utilization_of(target.placements, target.sheet),
        ))
    return layouts


# ============================================================================
# VERIFICATION
# ============================================================================

def verify_layouts(layouts: Sequence[Layout], pieces: Sequence[Piece]) -> List[str]:
    """
    Check piece accounting, bounds, overlap and grain rules

    Returns a list of human-readable problems; empty means the layouts
    are valid.
    """
    problems: List[str] = []
    by_id: Dict[str, Piece] = {p.id: p for p in pieces}
    counts: Dict[str, int] = {p.id: 0 for p in pieces}

    for layout in layouts:
        sheet_box = shp_box(0, 0, layout.sheet.width, layout.sheet.length)
        boxes: List[Tuple[PlacedPiece, object]] = []
        for placed in layout.placements:
            piece = by_id.get(placed.piece_id)
            if piece is None:
                problems.append(f"{layout.sheet_id}: unknown piece '{placed.piece_id}'")
                continue
            counts[placed.piece_id] += 1
            if placed.sheet_id != layout.sheet_id:
                problems.append(f"{layout.sheet_id}: placement of '{placed.piece_id}' names sheet {placed.sheet_id}")
            if placed.rotation in QUARTER_TURNS and not piece.allows_quarter_turn:
                problems.append(f"{layout.sheet_id}: grain-constrained '{piece.id}' rotated {placed.rotation}")
            footprint = shp_box(*placed.bounds)
            if footprint.difference(sheet_box).area > EPS:
                problems.append(f"{layout.sheet_id}: '{placed.piece_id}' at ({placed.x}, {placed.y}) leaves the sheet")
            boxes.append((placed, footprint))

        for (a, box_a), (b, box_b) in combinations(boxes, 2):
            if box_a.intersection(box_b).area > EPS:
                problems.append(
                    f"{layout.sheet_id}: '{a.piece_id}' at ({a.x}, {a.y}) overlaps '{b.piece_id}' at ({b.x}, {b.y})"
                )

        if not 0.0 <= layout.utilization_percent <= 100.0:
            problems.append(f"{layout.sheet_id}: utilization {layout.utilization_percent} out of range")

    for piece_id, count in counts.items():
        if count != by_id[piece_id].quantity:
            problems.append(f"Piece '{piece_id}' placed {count} times, requested {by_id[piece_id].quantity}")
    return problems


def calculate_total_area(layouts: Sequence[Layout]) -> Tuple[float, float]:
    """
    Calculate used and available area

    Returns: (used_area, total_area)
    """
    used_area = sum(layout.used_area for layout in layouts)
    total_area = sum(layout.sheet.area for layout in layouts)
    return used_area, total_area


class NestingOptimizer:
    """Shelf nesting with post-pack verification"""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def optimize(self, pieces: Sequence[Piece], sheets: Sequence[Sheet],
                 cancel_token: Optional[CancellationToken] = None,
                 job_id: Optional[str] = None) -> List[Layout]:
        if not pieces:
            return []

        layouts = shelf_nest(pieces, sheets, clearance=self.config.clearance,
                             cancel_token=cancel_token, job_id=job_id)
        problems = verify_layouts(layouts, pieces)
        if problems:
            for problem in problems:
                logger.error("Layout check failed for job %s: %s", job_id, problem)
            raise NestingEngineError(f"Layout verification failed: {problems[0]}", entity_id=job_id)

        used, total = calculate_total_area(layouts)
        logger.info(
            "Nested %d units of %d pieces onto %d sheet(s), %.2f%% used",
            sum(p.quantity for p in pieces), len(pieces), len(layouts),
            used / total * 100.0 if total else 0.0,
        )
        return layouts
