"""
Piece catalog

Validates raw piece requests and keeps the normalized pieces of one job.
"""

import logging
from typing import Dict, List, Union

from pydantic import ValidationError as PydanticValidationError

from .errors import NotFoundError, ValidationError
from .models import EPS, Piece, PieceRequest, template_extent

logger = logging.getLogger(__name__)


def validate_request(request: PieceRequest) -> None:
    """Reject non-positive dimensions, zero quantity and out-of-outline templates"""
    label = request.id or request.name or "<new piece>"
    if request.width <= 0 or request.length <= 0:
        raise ValidationError(
            f"Piece '{label}': width and length must be positive "
            f"(got {request.width} x {request.length})",
            entity_id=request.id,
        )
    if request.quantity < 1:
        raise ValidationError(
            f"Piece '{label}': quantity must be at least 1 (got {request.quantity})",
            entity_id=request.id,
        )
    for op in request.operations:
        max_x, max_y = template_extent(op)
        if max_x > request.width + EPS or max_y > request.length + EPS:
            raise ValidationError(
                f"Piece '{label}': {op.type} at ({op.x}, {op.y}) lies outside the "
                f"{request.width} x {request.length} outline",
                entity_id=request.id,
            )


class PieceCatalog:
    """Ordered, id-unique collection of pieces"""

    def __init__(self, has_grain: bool = True):
        self.has_grain = has_grain
        self._pieces: Dict[str, Piece] = {}
        self._next_seq = 1

    def __len__(self) -> int:
        return len(self._pieces)

    def __contains__(self, piece_id: str) -> bool:
        return piece_id in self._pieces

    def _next_id(self) -> str:
        while True:
            candidate = f"P-{self._next_seq:04d}"
            self._next_seq += 1
            if candidate not in self._pieces:
                return candidate

    def add_piece(self, request: Union[PieceRequest, dict]) -> Piece:
        """
        Validate a piece request and add it to the catalog

        Accepts a PieceRequest or a plain dict. Returns the normalized,
        immutable Piece. Raises ValidationError on malformed input.
        """
        if not isinstance(request, PieceRequest):
            try:
                request = PieceRequest.model_validate(request)
            except PydanticValidationError as e:
                raise ValidationError(f"Malformed piece request: {e}") from e

        validate_request(request)

        if request.id is not None and request.id in self._pieces:
            raise ValidationError(f"Piece with ID '{request.id}' already exists", entity_id=request.id)

        piece_id = request.id if request.id is not None else self._next_id()
        grain = request.grain_constrained
        if grain and not self.has_grain:
            logger.debug("Piece %s: material has no grain, dropping grain constraint", piece_id)
            grain = False

        piece = Piece(
            id=piece_id,
            name=request.name or piece_id,
            width=request.width,
            length=request.length,
            quantity=request.quantity,
            grain_constrained=grain,
            allow_rotation=request.allow_rotation,
            operations=tuple(request.operations),
        )
        self._pieces[piece_id] = piece
        logger.debug("Added piece %s (%g x %g, qty %d)", piece_id, piece.width, piece.length, piece.quantity)
        return piece

    def remove_piece(self, piece_id: str) -> Piece:
        try:
            return self._pieces.pop(piece_id)
        except KeyError:
            raise NotFoundError("Piece", piece_id) from None

    def get_piece(self, piece_id: str) -> Piece:
        piece = self._pieces.get(piece_id)
        if piece is None:
            raise NotFoundError("Piece", piece_id)
        return piece

    def pieces(self) -> List[Piece]:
        """Pieces in insertion order"""
        return list(self._pieces.values())

    def total_area(self) -> float:
        return sum(p.area * p.quantity for p in self._pieces.values())
