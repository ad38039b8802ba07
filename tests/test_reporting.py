"""Tests for utilization, cost and cutting-list reporting."""

import pytest

from conftest import make_piece, make_sheet
from panelnest.nesting import shelf_nest
from panelnest.reporting import UtilizationReporter, cutting_list, layout_table, naive_packing_cost


@pytest.fixture
def reporter():
    return UtilizationReporter()


def test_cabinet_report(reporter, cabinet_pieces, standard_sheet):
    layouts = shelf_nest(cabinet_pieces, [standard_sheet])
    report = reporter.report(layouts, cabinet_pieces, [standard_sheet])

    assert report.sheet_count == 2
    assert report.utilization_percent == pytest.approx(53.125)
    assert report.waste_percentage == pytest.approx(46.875)
    assert report.material_cost == pytest.approx(120.0)
    assert report.estimated_savings == pytest.approx(0.0)
    assert report.used_area == pytest.approx(4896.0)
    assert report.sheet_area == pytest.approx(9216.0)


def test_savings_from_sharing_a_sheet(reporter, standard_sheet):
    pieces = [
        make_piece("A", 10.0, 10.0),
        make_piece("B", 12.0, 10.0),
        make_piece("C", 14.0, 10.0),
    ]
    layouts = shelf_nest(pieces, [standard_sheet])
    report = reporter.report(layouts, pieces, [standard_sheet])

    assert report.sheet_count == 1
    assert report.material_cost == pytest.approx(60.0)
    assert report.estimated_savings == pytest.approx(120.0)


def test_report_is_idempotent(reporter, cabinet_pieces, standard_sheet):
    layouts = shelf_nest(cabinet_pieces, [standard_sheet])
    first = reporter.report(layouts, cabinet_pieces, [standard_sheet])
    second = reporter.report(layouts, cabinet_pieces, [standard_sheet])
    assert first == second


def test_baseline_defaults_to_consumed_stock(reporter, cabinet_pieces, standard_sheet):
    layouts = shelf_nest(cabinet_pieces, [standard_sheet])
    assert reporter.report(layouts, cabinet_pieces) == reporter.report(layouts, cabinet_pieces, [standard_sheet])


def test_empty_layouts(reporter):
    report = reporter.report([])
    assert report.utilization_percent == 0.0
    assert report.waste_percentage == 0.0
    assert report.material_cost == 0.0
    assert report.estimated_savings == 0.0
    assert report.sheet_count == 0


def test_run_time_passed_through(reporter, cabinet_pieces, standard_sheet):
    layouts = shelf_nest(cabinet_pieces, [standard_sheet])
    assert reporter.report(layouts, cabinet_pieces, estimated_run_time=12.5).estimated_run_time == 12.5


def test_naive_cost_uses_cheapest_admitting_sheet():
    big = make_sheet("BIG", 48.0, 96.0, unit_cost=60.0)
    small = make_sheet("SMALL", 24.0, 48.0, unit_cost=20.0)
    pieces = [make_piece("A", 20.0, 40.0), make_piece("B", 30.0, 40.0)]
    assert naive_packing_cost(pieces, [big, small]) == pytest.approx(80.0)


def test_cutting_list(cabinet_pieces):
    df = cutting_list(cabinet_pieces)
    assert list(df.columns) == [
        "Piece", "Name", "Width", "Length", "Quantity", "Total Area",
        "Grain", "Rotation Allowed", "Operations",
    ]
    assert list(df["Piece"]) == ["CAB-001", "CAB-002"]
    assert list(df["Total Area"]) == [4032.0, 864.0]
    assert list(df["Grain"]) == ["Yes", "No"]
    assert list(df["Rotation Allowed"]) == ["No", "Yes"]


def test_layout_table(cabinet_pieces, standard_sheet):
    df = layout_table(shelf_nest(cabinet_pieces, [standard_sheet]))
    assert len(df) == 3
    assert list(df["Sheet"]) == ["SHEET-001", "SHEET-001", "SHEET-002"]
    assert list(df["Stock"].unique()) == ["STD"]
    assert list(df["X"]) == [0.0, 24.0, 0.0]


def test_empty_tables_keep_columns():
    assert list(cutting_list([]).columns)[0] == "Piece"
    assert layout_table([]).empty
