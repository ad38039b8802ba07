"""Shared fixtures for the nesting engine tests."""

import pytest

from panelnest.engine import InMemoryEngine
from panelnest.models import MaterialSpec, Piece, Sheet, Tool
from panelnest.session import NestingSession
from panelnest.stock import StaticStockProvider
from panelnest.tools import ToolCatalog


def make_piece(piece_id, width, length, quantity=1, grain=False, rotate=False, operations=()):
    return Piece(
        id=piece_id,
        name=piece_id,
        width=width,
        length=length,
        quantity=quantity,
        grain_constrained=grain,
        allow_rotation=rotate,
        operations=tuple(operations),
    )


def make_sheet(sheet_id, width, length, unit_cost=60.0, thickness=0.75):
    return Sheet(id=sheet_id, width=width, length=length, thickness=thickness, unit_cost=unit_cost)


def standard_tools():
    return [
        Tool(id="CUT-1", number=1, type="cut", diameter=0.375, feed_rate=600.0,
             spindle_speed=18000, life_minutes=480, max_depth=1.0),
        Tool(id="DRL-5", number=2, type="drill", diameter=0.197, feed_rate=120.0,
             spindle_speed=6000, life_minutes=240, max_depth=1.0),
        Tool(id="RTE-1", number=3, type="route", diameter=0.25, feed_rate=300.0,
             spindle_speed=16000, life_minutes=300, max_depth=0.5),
        Tool(id="PKT-1", number=4, type="pocket", diameter=0.5, feed_rate=400.0,
             spindle_speed=16000, life_minutes=300, max_depth=0.5),
    ]


@pytest.fixture
def ply() -> MaterialSpec:
    """Standard 4'x8' 3/4\" plywood."""
    return MaterialSpec(
        id="MAT-PLY",
        name="Birch plywood",
        sheet_width=48.0,
        sheet_length=96.0,
        thickness=0.75,
        unit_cost=60.0,
        has_grain=True,
    )


@pytest.fixture
def stock(ply) -> StaticStockProvider:
    return StaticStockProvider([ply])


@pytest.fixture
def standard_sheet() -> Sheet:
    return make_sheet("STD", 48.0, 96.0)


@pytest.fixture
def tools() -> ToolCatalog:
    return ToolCatalog(standard_tools())


@pytest.fixture
def engine() -> InMemoryEngine:
    return InMemoryEngine()


@pytest.fixture
def session(stock, tools, engine):
    with NestingSession(stock, tools, engine=engine) as s:
        yield s


@pytest.fixture
def cabinet_pieces():
    """Side panels and a top panel from a base cabinet."""
    return [
        make_piece("CAB-001", 24.0, 84.0, quantity=2, grain=True),
        make_piece("CAB-002", 36.0, 24.0, quantity=1),
    ]
