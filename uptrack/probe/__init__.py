"""Probe ingest — outcome classification, per-day archive, hot window."""

from .engine import ProbeOutcome, Reading, Recorder, State, classify, normalize_service_name
