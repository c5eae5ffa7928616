"""Rollup engine — per-day archives to daily-summary.json."""

from .aggregate import aggregate_day, count_incidents, percentile_95
from .engine import build_summary, render_summary, run_rollup, write_summary
from .models import DailySummaryDocument, DailySummaryEntry
