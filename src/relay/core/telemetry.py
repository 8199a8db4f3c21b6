"""
Telemetry sinks for runner observability.

A runner reports to its sink:

- one `TelemetryEvent` per `AgentRunEvent`, named after the event type
  (`run_started`, `step_started`, `tool_completed`, ..., `run_completed`),
  plus the `subagent_*` events of delegation tools;
- the counter `relay.runs`, once per finished run, tagged with `agent_name`
  and the terminal `state`;
- the histograms `relay.run.duration_s` (per run) and
  `relay.subagent.latency_ms` (per delegated call).

`NullTelemetrySink` is the default. `InMemoryTelemetrySink` keeps everything
for tests; `LoggingTelemetrySink` writes to the standard `logging` tree.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..agents.types import AgentRunEvent
from ..llms.types import JSONValue

Attributes = dict[str, JSONValue]


@dataclass(frozen=True, slots=True)
class TelemetryEvent:
    """
    One reported occurrence.

    Attributes:
        name: Run event type, or a delegation event name.
        timestamp_ms: Epoch milliseconds when the event was reported.
        attributes: JSON-safe payload; run events carry `run_id`,
            `agent_name`, `step` and `message` next to their own data.
    """

    name: str
    timestamp_ms: int
    attributes: Attributes = field(default_factory=dict)

    @staticmethod
    def from_run_event(event: AgentRunEvent) -> "TelemetryEvent":
        return TelemetryEvent(
            name=event.type,
            timestamp_ms=now_ms(),
            attributes={
                "run_id": event.run_id,
                "agent_name": event.agent_name,
                "step": event.step,
                "message": event.message,
                **event.data,
            },
        )


class TelemetrySink(Protocol):
    """
    Destination for run events, counters and histograms.

    Sinks are called from the event loop thread and must not block.
    """

    def record_event(self, event: TelemetryEvent) -> None:
        ...

    def increment_counter(
        self,
        name: str,
        value: int = 1,
        *,
        attributes: Attributes | None = None,
    ) -> None:
        ...

    def record_histogram(
        self,
        name: str,
        value: float,
        *,
        attributes: Attributes | None = None,
    ) -> None:
        ...


@dataclass(slots=True)
class NullTelemetrySink:
    """Discards everything."""

    def record_event(self, event: TelemetryEvent) -> None:
        pass

    def increment_counter(
        self,
        name: str,
        value: int = 1,
        *,
        attributes: Attributes | None = None,
    ) -> None:
        pass

    def record_histogram(
        self,
        name: str,
        value: float,
        *,
        attributes: Attributes | None = None,
    ) -> None:
        pass


def _measurement(name: str, value: Any, attributes: Attributes | None) -> dict[str, Any]:
    return {
        "name": name,
        "value": value,
        "attributes": dict(attributes or {}),
        "timestamp_ms": now_ms(),
    }


@dataclass(slots=True)
class InMemoryTelemetrySink:
    """
    Keeps every event and measurement in order of arrival.

    Measurements are dicts with `name`, `value`, `attributes` and
    `timestamp_ms`.
    """

    _events: list[TelemetryEvent] = field(default_factory=list)
    _counters: list[dict[str, Any]] = field(default_factory=list)
    _histograms: list[dict[str, Any]] = field(default_factory=list)

    def record_event(self, event: TelemetryEvent) -> None:
        self._events.append(event)

    def increment_counter(
        self,
        name: str,
        value: int = 1,
        *,
        attributes: Attributes | None = None,
    ) -> None:
        self._counters.append(_measurement(name, int(value), attributes))

    def record_histogram(
        self,
        name: str,
        value: float,
        *,
        attributes: Attributes | None = None,
    ) -> None:
        self._histograms.append(_measurement(name, float(value), attributes))

    def events(self, name: str | None = None) -> list[TelemetryEvent]:
        if name is None:
            return list(self._events)
        return [e for e in self._events if e.name == name]

    def counters(self) -> list[dict[str, Any]]:
        return list(self._counters)

    def counter_total(self, name: str) -> int:
        """Sum of every increment of counter `name` (`relay.runs` counts finished runs)."""
        return sum(c["value"] for c in self._counters if c["name"] == name)

    def histograms(self) -> list[dict[str, Any]]:
        return list(self._histograms)


@dataclass(slots=True)
class LoggingTelemetrySink:
    """
    Writes to a `logging.Logger`.

    Events are logged at `level` as `"<name> <attributes>"` with `None`
    attributes dropped; counters and histograms go out at DEBUG.
    """

    logger_name: str = "relay.telemetry"
    level: int = logging.INFO

    def _logger(self) -> logging.Logger:
        return logging.getLogger(self.logger_name)

    def record_event(self, event: TelemetryEvent) -> None:
        attrs = {k: v for k, v in event.attributes.items() if v is not None}
        self._logger().log(self.level, "%s %s", event.name, attrs)

    def increment_counter(
        self,
        name: str,
        value: int = 1,
        *,
        attributes: Attributes | None = None,
    ) -> None:
        self._logger().debug("counter %s += %d %s", name, value, attributes or {})

    def record_histogram(
        self,
        name: str,
        value: float,
        *,
        attributes: Attributes | None = None,
    ) -> None:
        self._logger().debug("histogram %s = %.3f %s", name, value, attributes or {})


def now_ms() -> int:
    return int(time.time() * 1000)
