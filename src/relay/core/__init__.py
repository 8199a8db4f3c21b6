"""
Core runtime exports.
"""

from .interaction import ControlChannel, RunHandle, SyncControlPolicy, drive
from .runner import Runner, RunnerConfig
from .telemetry import (
    InMemoryTelemetrySink,
    LoggingTelemetrySink,
    NullTelemetrySink,
    TelemetryEvent,
    TelemetrySink,
)

__all__ = [
    "Runner",
    "RunnerConfig",
    "ControlChannel",
    "RunHandle",
    "SyncControlPolicy",
    "drive",
    "TelemetrySink",
    "TelemetryEvent",
    "NullTelemetrySink",
    "InMemoryTelemetrySink",
    "LoggingTelemetrySink",
]
