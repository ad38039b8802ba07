"""Tests for piece validation and the piece catalog."""

import pydantic
import pytest

from panelnest.catalog import PieceCatalog
from panelnest.errors import NotFoundError, ValidationError
from panelnest.models import DrillTemplate, PieceRequest


class TestAddPiece:

    def test_returns_normalized_piece(self):
        catalog = PieceCatalog()
        piece = catalog.add_piece({"id": "SIDE", "name": "Side", "width": 24, "length": 84, "quantity": 2})
        assert piece.id == "SIDE"
        assert piece.width == 24.0
        assert piece.length == 84.0
        assert piece.quantity == 2
        assert "SIDE" in catalog
        assert len(catalog) == 1

    def test_sequential_ids(self):
        catalog = PieceCatalog()
        first = catalog.add_piece({"width": 10, "length": 10})
        second = catalog.add_piece({"width": 12, "length": 10})
        assert first.id == "P-0001"
        assert second.id == "P-0002"
        assert first.name == "P-0001"

    def test_sequential_id_skips_caller_ids(self):
        catalog = PieceCatalog()
        catalog.add_piece({"id": "P-0001", "width": 10, "length": 10})
        generated = catalog.add_piece({"width": 10, "length": 10})
        assert generated.id == "P-0002"

    @pytest.mark.parametrize("width,length,quantity", [
        (0, 10, 1),
        (10, 0, 1),
        (-5, 10, 1),
        (10, -1, 1),
        (10, 10, 0),
        (10, 10, -3),
    ])
    def test_rejects_bad_dimensions(self, width, length, quantity):
        catalog = PieceCatalog()
        with pytest.raises(ValidationError):
            catalog.add_piece({"id": "BAD", "width": width, "length": length, "quantity": quantity})
        assert len(catalog) == 0

    def test_rejects_duplicate_id(self):
        catalog = PieceCatalog()
        catalog.add_piece({"id": "A", "width": 10, "length": 10})
        with pytest.raises(ValidationError) as exc:
            catalog.add_piece({"id": "A", "width": 20, "length": 10})
        assert exc.value.entity_id == "A"

    def test_rejects_malformed_request(self):
        catalog = PieceCatalog()
        with pytest.raises(ValidationError):
            catalog.add_piece({"id": "A", "width": "wide", "length": 10})

    def test_rejects_template_outside_outline(self):
        catalog = PieceCatalog()
        request = PieceRequest(
            id="A", width=10, length=10,
            operations=[DrillTemplate(x=12, y=2, depth=0.5)],
        )
        with pytest.raises(ValidationError):
            catalog.add_piece(request)

    def test_accepts_height_and_qty_aliases(self):
        catalog = PieceCatalog()
        piece = catalog.add_piece({"id": "A", "width": 10, "height": 30, "qty": 3})
        assert piece.length == 30.0
        assert piece.quantity == 3

    def test_grainless_material_drops_grain_constraint(self):
        catalog = PieceCatalog(has_grain=False)
        piece = catalog.add_piece({"id": "A", "width": 10, "length": 30, "grain_constrained": True})
        assert piece.grain_constrained is False
        assert piece.allows_quarter_turn

    def test_piece_is_immutable(self):
        catalog = PieceCatalog()
        piece = catalog.add_piece({"id": "A", "width": 10, "length": 30})
        with pytest.raises(pydantic.ValidationError):
            piece.width = 50


class TestRemovePiece:

    def test_remove_existing(self):
        catalog = PieceCatalog()
        catalog.add_piece({"id": "A", "width": 10, "length": 10})
        removed = catalog.remove_piece("A")
        assert removed.id == "A"
        assert len(catalog) == 0

    def test_remove_unknown(self):
        catalog = PieceCatalog()
        with pytest.raises(NotFoundError) as exc:
            catalog.remove_piece("missing")
        assert exc.value.entity_id == "missing"

    def test_get_unknown(self):
        with pytest.raises(NotFoundError):
            PieceCatalog().get_piece("missing")


def test_pieces_keep_insertion_order_and_total_area():
    catalog = PieceCatalog()
    catalog.add_piece({"id": "B", "width": 10, "length": 10, "quantity": 2})
    catalog.add_piece({"id": "A", "width": 5, "length": 4})
    assert [p.id for p in catalog.pieces()] == ["B", "A"]
    assert catalog.total_area() == pytest.approx(220.0)
