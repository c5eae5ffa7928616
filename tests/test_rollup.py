"""Tests for per-day aggregation and the rollup engine."""

from __future__ import annotations

import json
import random
from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError

from conftest import NOW, TODAY, reading
from uptrack.errors import LogIOError
from uptrack.probe.archive import SUMMARY_FILE, day_log_path
from uptrack.probe.engine import State
from uptrack.rollup.aggregate import aggregate_day, count_incidents, percentile_95
from uptrack.rollup.engine import build_summary, render_summary, run_rollup, write_summary
from uptrack.rollup.models import DailySummaryEntry


def _seq(*states: str) -> list:
    return [reading(s, minute=i) for i, s in enumerate(states)]


# ── Aggregation ──────────────────────────────────────────────────────────────


class TestAggregateDay:
    def test_up_then_down_example(self) -> None:
        entry = aggregate_day(TODAY, [reading("up", 100, hour=1), reading("down", 3000, hour=2)])
        assert entry.uptimePct == 0.5
        assert entry.avgLatencyMs == 100
        assert entry.p95LatencyMs == 100
        assert entry.incidentCount == 1
        assert entry.checksTotal == 2
        assert entry.checksPassed == 1

    def test_maintenance_counts_as_passed(self) -> None:
        entry = aggregate_day(TODAY, _seq("up", "maintenance", "down", "degraded"))
        assert entry.checksPassed == 2
        assert entry.uptimePct == 0.5

    def test_latency_only_from_up(self) -> None:
        entry = aggregate_day(TODAY, [
            reading("up", 100, hour=0),
            reading("degraded", 40_000, hour=1),
            reading("down", 10_000, hour=2),
            reading("maintenance", 9_999, hour=3),
            reading("up", 200, hour=4),
        ])
        assert entry.avgLatencyMs == 150
        assert entry.p95LatencyMs == 200

    def test_no_up_readings_gives_null_latency(self) -> None:
        entry = aggregate_day(TODAY, _seq("down", "degraded", "down"))
        assert entry.avgLatencyMs is None
        assert entry.p95LatencyMs is None
        assert entry.uptimePct == 0.0

    def test_empty_day(self) -> None:
        entry = aggregate_day(TODAY, [])
        assert entry.checksTotal == 0
        assert entry.uptimePct == 0.0
        assert entry.avgLatencyMs is None

    def test_sorts_before_counting_incidents(self) -> None:
        # appended out of order: the down reading happened after the up one
        entry = aggregate_day(TODAY, [reading("down", hour=5), reading("up", hour=1)])
        assert entry.incidentCount == 1

    def test_mean_rounds_half_up(self) -> None:
        entry = aggregate_day(TODAY, [reading("up", 100, hour=0), reading("up", 101, hour=1)])
        assert entry.avgLatencyMs == 101

    def test_uptime_invariant_over_random_days(self) -> None:
        rng = random.Random(42)
        states = [s.value for s in State]
        for _ in range(200):
            n = rng.randint(1, 40)
            entry = aggregate_day(TODAY, _seq(*(rng.choice(states) for _ in range(n))))
            assert 0.0 <= entry.uptimePct <= 1.0
            assert entry.checksPassed <= entry.checksTotal
            assert entry.uptimePct == entry.checksPassed / entry.checksTotal


class TestIncidents:
    @pytest.mark.parametrize("states, expected", [
        (("down", "down", "up"), 0),
        (("up", "down", "up", "down"), 2),
        (("up", "degraded", "down"), 0),
        (("up", "up", "down", "down"), 1),
        (("up",), 0),
        ((), 0),
    ])
    def test_up_to_down_transitions(self, states, expected) -> None:
        assert count_incidents(_seq(*states)) == expected


class TestPercentile:
    def test_empty(self) -> None:
        assert percentile_95([]) is None

    def test_single(self) -> None:
        assert percentile_95([42]) == 42

    def test_nearest_rank(self) -> None:
        # ceil(0.95 * 20) - 1 = 18
        assert percentile_95(list(range(20, 0, -1))) == 19

    def test_small_sample(self) -> None:
        # ceil(0.95 * 3) - 1 = 2
        assert percentile_95([10, 30, 20]) == 30


class TestEntryModel:
    def test_rejects_passed_above_total(self) -> None:
        with pytest.raises(ValidationError):
            DailySummaryEntry(date=TODAY, uptimePct=1.0, checksTotal=1, checksPassed=2)

    def test_rejects_uptime_out_of_range(self) -> None:
        with pytest.raises(ValidationError):
            DailySummaryEntry(date=TODAY, uptimePct=1.5, checksTotal=1, checksPassed=1)


# ── build_summary ────────────────────────────────────────────────────────────


class TestBuildSummary:
    def test_one_entry_per_service_day(self, data_dir: Path, history) -> None:
        history("api", 3, up=3, down=1)
        history("web", 2, up=4)

        doc = build_summary(data_dir, 90, NOW)

        assert doc.schemaVersion == 1
        assert doc.windowDays == 90
        assert doc.generatedAt == NOW
        assert set(doc.services) == {"api", "web"}
        api = doc.services["api"]
        assert [e.date for e in api] == [TODAY - timedelta(days=d) for d in range(3)]
        assert all(e.uptimePct == 0.75 and e.incidentCount == 1 for e in api)
        assert len(doc.services["web"]) == 2

    def test_window_limits_days(self, data_dir: Path, history) -> None:
        history("api", 10)
        doc = build_summary(data_dir, 7, NOW)
        assert len(doc.services["api"]) == 7
        assert doc.services["api"][-1].date == TODAY - timedelta(days=6)

    def test_exclude_today(self, data_dir: Path, history) -> None:
        history("api", 3)
        doc = build_summary(data_dir, 90, NOW, include_today=False)
        assert TODAY not in {e.date for e in doc.services["api"]}
        assert len(doc.services["api"]) == 2

    def test_gaps_are_not_synthesized(self, data_dir: Path, write_day) -> None:
        write_day("api", TODAY, [reading("up")])
        old = TODAY - timedelta(days=5)
        write_day("api", old, [reading("up", day=old)])
        doc = build_summary(data_dir, 90, NOW)
        assert [e.date for e in doc.services["api"]] == [TODAY, old]

    def test_corrupt_day_skipped(self, data_dir: Path, history) -> None:
        history("api", 3)
        yesterday = TODAY - timedelta(days=1)
        plain = day_log_path(data_dir, "api", yesterday)
        plain.unlink()
        plain.with_name(plain.name + ".gz").write_bytes(b"corrupt")

        skipped: list[str] = []
        doc = build_summary(data_dir, 90, NOW, skipped=skipped)

        assert [e.date for e in doc.services["api"]] == [TODAY, TODAY - timedelta(days=2)]
        assert len(skipped) == 1
        assert "api@2025-11-05" in skipped[0]

    @pytest.mark.parametrize("bad_line", [
        '{"t":1,"svc":"web","state":"up","code":[1],"lat":5}',
        '{"t":1e400,"svc":"web","state":"up","code":200,"lat":5}',
        '{"t":1000000000000000000,"svc":"web","state":"up","code":200,"lat":5}',
    ])
    def test_wrongly_typed_day_skipped(self, data_dir: Path, write_day, bad_line: str) -> None:
        write_day("api", TODAY, [reading("up")])
        bad = day_log_path(data_dir, "web", TODAY)
        bad.parent.mkdir(parents=True)
        bad.write_text(bad_line + "\n")

        skipped: list[str] = []
        doc = build_summary(data_dir, 90, NOW, skipped=skipped)

        assert list(doc.services) == ["api"]
        assert len(skipped) == 1 and skipped[0].startswith("web@2025-11-06")

    def test_run_rollup_keeps_good_lines_of_mixed_day(self, data_dir: Path, write_day) -> None:
        write_day("api", TODAY, [reading("up")])
        bad = day_log_path(data_dir, "web", TODAY)
        bad.parent.mkdir(parents=True)
        bad.write_text(json.dumps(reading("up", service="web").to_record())
                       + '\n{"t":1,"svc":"web","state":"up","lat":[5]}\n')

        report = run_rollup(data_dir, 90, NOW)

        assert report.skipped == []
        assert report.document.services["web"][0].checksTotal == 1

    def test_naive_now_is_utc(self, data_dir: Path, history) -> None:
        history("api", 3)
        aware = render_summary(build_summary(data_dir, 90, NOW))
        naive = render_summary(build_summary(data_dir, 90, NOW.replace(tzinfo=None)))
        assert naive == aware

    def test_empty_log_is_absent(self, data_dir: Path, write_day) -> None:
        write_day("api", TODAY, [])
        assert build_summary(data_dir, 90, NOW).services == {}

    def test_missing_archive_root(self, tmp_path: Path) -> None:
        with pytest.raises(LogIOError):
            build_summary(tmp_path / "nowhere", 90, NOW)

    def test_single_worker_matches_pool(self, data_dir: Path, history) -> None:
        history("api", 20, up=5, down=2)
        history("web", 15, up=3)
        serial = render_summary(build_summary(data_dir, 90, NOW, max_workers=1))
        pooled = render_summary(build_summary(data_dir, 90, NOW, max_workers=8))
        assert serial == pooled


class TestSummaryOutput:
    def test_idempotent_bytes(self, data_dir: Path, history) -> None:
        history("web", 5, up=4, down=1)
        history("api", 12, up=2)

        first = run_rollup(data_dir, 90, now=NOW).path.read_bytes()
        second = run_rollup(data_dir, 90, now=NOW).path.read_bytes()
        assert first == second

    def test_document_shape(self, data_dir: Path, history) -> None:
        history("api", 1, up=1, down=1)
        report = run_rollup(data_dir, 30, now=NOW)

        raw = json.loads((data_dir / SUMMARY_FILE).read_text())
        assert raw["schemaVersion"] == 1
        assert raw["windowDays"] == 30
        assert raw["generatedAt"].startswith("2025-11-06T12:00:00")
        assert raw["services"]["api"] == [{
            "date": "2025-11-06",
            "uptimePct": 0.5,
            "avgLatencyMs": 100,
            "p95LatencyMs": 100,
            "checksTotal": 2,
            "checksPassed": 1,
            "incidentCount": 1,
        }]
        assert report.service_count == 1
        assert report.days_with_data == 1

    def test_services_sorted_in_output(self, data_dir: Path, history) -> None:
        for name in ("zeta", "alpha", "mid"):
            history(name, 1)
        raw = json.loads(render_summary(build_summary(data_dir, 90, NOW)))
        assert list(raw["services"]) == ["alpha", "mid", "zeta"]

    def test_write_summary_replaces_file(self, data_dir: Path, history) -> None:
        history("api", 1)
        target = data_dir / SUMMARY_FILE
        target.write_text("old")
        write_summary(build_summary(data_dir, 90, NOW), target)
        assert json.loads(target.read_text())["services"]["api"]
