"""Reporting utilities for digitnet."""

from .artifacts import write_manifest
from .metrics import Broadcast, CsvSink, JsonlSink, ProgressCapture
from .plots import PlotAdapter
from .summary import summarise_progress, write_summary

__all__ = [
    "Broadcast",
    "CsvSink",
    "JsonlSink",
    "PlotAdapter",
    "ProgressCapture",
    "summarise_progress",
    "write_manifest",
    "write_summary",
]
