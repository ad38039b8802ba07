"""Tests for artifact export, native engines and configuration loading."""

import json

import pytest

from panelnest.config import EngineConfig
from panelnest.engine import FileSystemEngine, InMemoryEngine
from panelnest.errors import ExportError
from panelnest.export import JobExporter
from panelnest.jobs import JobState
from panelnest.session import NestingSession

SIDE = {"id": "CAB-001", "width": 24, "length": 84, "quantity": 2, "grain_constrained": True}
TOP = {"id": "CAB-002", "width": 36, "length": 24}


def prepared_job(session):
    job = session.create_job("MAT-PLY")
    session.add_piece(job.id, SIDE)
    session.add_piece(job.id, TOP)
    session.optimize(job.id)
    session.generate_program(job.id)
    return job


def test_files_written(stock, tools, tmp_path):
    out = tmp_path / "exports"
    with NestingSession(stock, tools, engine=FileSystemEngine(out)) as session:
        job = prepared_job(session)
        paths = session.export(job.id)

    assert job.state == JobState.EXPORTED
    assert sorted(p.name for p in out.iterdir()) == sorted(paths)
    assert paths["JOB-0001.nc"] == str(out / "JOB-0001.nc")

    nc = (out / "JOB-0001.nc").read_text()
    assert nc.startswith("%\n(PROGRAM JOB-0001)")

    layouts = json.loads((out / "JOB-0001_layouts.json").read_text())
    assert layouts["job_id"] == "JOB-0001"
    assert [layout["sheet_id"] for layout in layouts["layouts"]] == ["SHEET-001", "SHEET-002"]
    assert layouts["layouts"][0]["stock_id"] == "MAT-PLY-1"
    assert layouts["layouts"][0]["placements"][1] == {
        "piece_id": "CAB-001", "x": 24.0, "y": 0.0, "rotation": 0, "flipped": False,
    }

    report = json.loads((out / "JOB-0001_report.json").read_text())
    assert report["utilization_percent"] == pytest.approx(53.125)
    assert report["sheet_count"] == 2

    cutlist = (out / "JOB-0001_cutlist.csv").read_text().splitlines()
    assert cutlist[0] == "Piece,Name,Width,Length,Quantity,Total Area,Grain,Rotation Allowed,Operations"
    assert len(cutlist) == 3


def test_failed_export_can_be_retried(stock, tools):
    engine = InMemoryEngine(fail_writes=1)
    with NestingSession(stock, tools, engine=engine) as session:
        job = prepared_job(session)

        with pytest.raises(ExportError) as exc:
            session.export(job.id)
        assert exc.value.entity_id == job.id
        assert job.state == JobState.GCODE_GENERATED
        assert "simulated write failure" in job.last_error

        session.export(job.id)

    assert job.state == JobState.EXPORTED
    assert job.last_error is None
    assert len(engine.artifacts) == 5


def test_render_requires_program(session, tools):
    job = session.create_job("MAT-PLY")
    with pytest.raises(ExportError):
        JobExporter(InMemoryEngine(), tools).render(job)


def test_render_is_repeatable(session, tools):
    job = prepared_job(session)
    exporter = JobExporter(InMemoryEngine(), tools)
    assert exporter.render(job) == exporter.render(job)


def test_nc_text_matches_program_text(session, engine):
    job = prepared_job(session)
    session.export(job.id)
    assert engine.artifacts["JOB-0001.nc"] == session.program_text(job.id)


class TestEngines:

    def test_lifecycle(self, tmp_path):
        engine = FileSystemEngine(tmp_path / "nested" / "out")
        assert not engine.initialized
        engine.initialize()
        assert engine.initialized
        assert (tmp_path / "nested" / "out").is_dir()
        engine.shutdown()
        assert not engine.initialized

    def test_overwrite_leaves_no_temp_files(self, tmp_path):
        engine = FileSystemEngine(tmp_path)
        engine.initialize()
        engine.write_artifact("a.txt", "first")
        engine.write_artifact("a.txt", "second")
        assert [p.name for p in tmp_path.iterdir()] == ["a.txt"]
        assert (tmp_path / "a.txt").read_text() == "second"

    def test_session_starts_and_stops_engine(self, stock, tools):
        engine = InMemoryEngine()
        with NestingSession(stock, tools, engine=engine):
            assert engine.initialized
        assert not engine.initialized


class TestConfig:

    def test_defaults(self):
        config = EngineConfig()
        assert config.units == "in"
        assert config.clearance == 0.0
        assert config.tool_change_minutes == 0.5

    def test_from_file(self, tmp_path):
        path = tmp_path / "engine.json"
        path.write_text(json.dumps({"units": "mm", "clearance": 3.0, "precision": 2}))
        config = EngineConfig.from_file(path)
        assert config.units == "mm"
        assert config.clearance == 3.0
        assert config.precision == 2
        assert config.rapid_feed_rate == 1200.0

    def test_clearance_reaches_optimizer(self, stock, tools):
        config = EngineConfig(clearance=0.5)
        with NestingSession(stock, tools, engine=InMemoryEngine(), config=config) as session:
            job = session.create_job("MAT-PLY")
            session.add_piece(job.id, {"id": "A", "width": 20, "length": 10, "quantity": 2})
            layouts = session.optimize(job.id)
        assert [p.x for p in layouts[0].placements] == [0.0, 20.5]

    def test_export_dir_used_by_default(self, stock, tools, tmp_path):
        out = tmp_path / "cut-files"
        with NestingSession(stock, tools, config=EngineConfig(export_dir=str(out))) as session:
            assert isinstance(session.engine, FileSystemEngine)
            job = prepared_job(session)
            paths = session.export(job.id)

        assert paths["JOB-0001.nc"] == str(out / "JOB-0001.nc")
        assert sorted(p.name for p in out.iterdir()) == sorted(paths)
