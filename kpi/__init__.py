"""
KPI package: interfaces and implementations for recording workflow events.

The logging recorder writes one structured line per event; the database
recorder batches inserts into the workflow_events table in PostgreSQL.
"""

from kpi.kpi_recorder_interface import (
    IKpiRecorder,
    WorkflowEvent,
    LoggingKpiRecorder,
    NullKpiRecorder,
)

__all__ = [
    "IKpiRecorder",
    "WorkflowEvent",
    "LoggingKpiRecorder",
    "NullKpiRecorder",
]
