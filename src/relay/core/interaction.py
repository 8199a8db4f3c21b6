"""
Suspend/resume protocol between a run's worker task and its driver.

The run executes in a worker task. Every step boundary and every control
request is handed to the driver through a single-slot queue, and the worker
waits on a second single-slot queue for the value to resume with. The driver
side is `RunHandle.resume`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable

from ..agents.errors import (
    AgentExecutionError,
    ControlRequestUnanswerable,
    ControlResponseMismatchError,
)
from ..agents.types import (
    CONTROL_REQUEST_TYPES,
    AgentRunEvent,
    Confirmation,
    ControlRequest,
    ControlResponse,
    RunResult,
    UserInput,
    describe_request,
)

LOGGER = logging.getLogger(__name__)

_CLOSED = object()

ChannelObserver = Callable[[str, dict[str, Any]], None]


class ControlChannel:
    """
    Two single-slot queues: items flow out to the driver, resume values flow back.

    Only one item is ever outstanding; concurrent requesters (tools of one
    batch) queue up behind a lock and surface one at a time.
    """

    def __init__(self, *, observer: ChannelObserver | None = None) -> None:
        self._outbound: asyncio.Queue[Any] = asyncio.Queue(maxsize=1)
        self._inbound: asyncio.Queue[Any] = asyncio.Queue(maxsize=1)
        self._lock = asyncio.Lock()
        self._closed = False
        self._waiting = False
        self.observer = observer

    @property
    def closed(self) -> bool:
        return self._closed

    async def yield_(self, item: Any) -> Any:
        """Publish `item` to the driver and wait for the value it resumes with."""
        async with self._lock:
            if self._closed:
                raise asyncio.CancelledError("run closed")
            await self._outbound.put(item)
            self._waiting = True
            try:
                value = await self._inbound.get()
            finally:
                self._waiting = False
            if value is _CLOSED:
                raise asyncio.CancelledError("run closed")
            return value

    async def request(self, request: ControlRequest) -> ControlResponse:
        """
        Suspend the run on `request` until the driver answers it.

        Raises:
            ControlResponseMismatchError: If the answer references another request.
        """
        self._notify("control_request_raised", describe_request(request))
        response = await self.yield_(request)
        if not isinstance(response, ControlResponse) or response.request_id != request.id:
            raise ControlResponseMismatchError(
                f"Response does not answer request {request.id}",
                expected=request.id,
                received=response,
            )
        self._notify(
            "control_request_resolved",
            {"id": request.id, "approved": response.approved},
        )
        return response

    # Driver side.

    def send(self, value: Any) -> None:
        self._inbound.put_nowait(value)

    async def receive(self) -> Any:
        return await self._outbound.get()

    def close(self) -> None:
        """Wake a suspended worker so it unwinds with `CancelledError`."""
        self._closed = True
        if self._waiting and self._inbound.empty():
            self._inbound.put_nowait(_CLOSED)

    def _notify(self, event_type: str, data: dict[str, Any]) -> None:
        if self.observer is not None:
            self.observer(event_type, data)


RunBody = Callable[[ControlChannel], Awaitable[RunResult]]


class RunHandle:
    """
    Pull-driven view of one run.

    `resume()` returns the next `ActionStep`, `PlanningStep`,
    `ControlRequest` or the terminal `RunResult`. The worker task starts on
    the first `resume()`; nothing runs while the driver is not resuming.
    """

    def __init__(
        self,
        body: RunBody,
        *,
        channel: ControlChannel | None = None,
        run_id: str | None = None,
        on_release: Callable[[], None] | None = None,
    ) -> None:
        self._body = body
        self.channel = channel or ControlChannel()
        self.run_id = run_id
        self.events: list[AgentRunEvent] = []
        self._on_release = on_release
        self._worker: asyncio.Task[RunResult] | None = None
        self._last: Any = None
        self._result: RunResult | None = None
        self._closed = False

    @property
    def started(self) -> bool:
        return self._worker is not None

    @property
    def done(self) -> bool:
        return self._result is not None

    @property
    def result(self) -> RunResult | None:
        return self._result

    @property
    def pending_request(self) -> ControlRequest | None:
        if isinstance(self._last, CONTROL_REQUEST_TYPES):
            return self._last
        return None

    async def resume(self, response: ControlResponse | None = None) -> Any:
        """
        Advance the run to its next yield point.

        Args:
            response: `None` after a step; the matching `ControlResponse`
                after a control request.

        Raises:
            ControlResponseMismatchError: If `response` does not fit the
                outstanding item. The run stays suspended.
        """
        if self._result is not None:
            return self._result
        if self._closed:
            raise AgentExecutionError("run handle is closed")

        if self._worker is None:
            if response is not None:
                raise ControlResponseMismatchError(
                    "The first resume() of a run takes no response", received=response
                )
            self._worker = asyncio.create_task(self._body(self.channel))
        else:
            self._check_response(response)
            self._last = None
            self.channel.send(response)

        return await self._next_item()

    def _check_response(self, response: ControlResponse | None) -> None:
        pending = self.pending_request
        if pending is None:
            if response is not None:
                raise ControlResponseMismatchError(
                    "No control request is pending; resume() takes no response",
                    received=response,
                )
            return
        if not isinstance(response, ControlResponse) or response.request_id != pending.id:
            raise ControlResponseMismatchError(
                f"Pending {type(pending).__name__} {pending.id} needs a ControlResponse for it",
                expected=pending.id,
                received=response,
            )

    async def _next_item(self) -> Any:
        assert self._worker is not None
        getter = asyncio.ensure_future(self.channel.receive())
        done, _ = await asyncio.wait({getter, self._worker}, return_when=asyncio.FIRST_COMPLETED)
        if getter not in done:
            getter.cancel()
            await asyncio.wait({getter})
        if not getter.cancelled():
            self._last = getter.result()
            return self._last

        self._result = self._worker.result()
        self._last = self._result
        self._release()
        return self._result

    async def close(self) -> None:
        """
        Abandon the run.

        A suspended worker is woken and cancelled; an execution in flight
        finishes its current tool batch first.
        """
        if self._closed:
            return
        self._closed = True
        self.channel.close()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
        self._release()
        LOGGER.debug("run %s closed by driver", self.run_id)

    def _release(self) -> None:
        if self._on_release is not None:
            callback, self._on_release = self._on_release, None
            callback()

    async def __aiter__(self) -> AsyncIterator[Any]:
        """Iterate steps until the run ends; control requests must go through `resume`."""
        item = await self.resume()
        while not isinstance(item, RunResult):
            if isinstance(item, CONTROL_REQUEST_TYPES):
                raise ControlRequestUnanswerable(
                    f"{type(item).__name__} raised while iterating; answer it with resume()",
                    request=item,
                )
            yield item
            item = await self.resume()


@dataclass(frozen=True, slots=True)
class SyncControlPolicy:
    """
    Answers control requests when no interactive driver exists.

    A `SubAgentQuery` is answered by applying the same rules to the request
    the innermost agent raised; the response references the query itself so
    each delegation level can translate it back down.

    Attributes:
        auto_approve_reversible: Approve confirmations of reversible actions.
    """

    auto_approve_reversible: bool = True

    def answer(self, request: ControlRequest) -> ControlResponse:
        if isinstance(request, Confirmation):
            if request.reversible and self.auto_approve_reversible:
                return ControlResponse.approve(request)
            raise ControlRequestUnanswerable(
                f"Confirmation for '{request.action}' requires an interactive driver",
                request=request,
            )
        if isinstance(request, UserInput):
            if request.default is not None:
                return ControlResponse.respond(request, request.default)
            raise ControlRequestUnanswerable(
                f"User input '{request.prompt}' requires an interactive driver",
                request=request,
            )
        inner = request.innermost()
        if inner is request:
            raise ControlRequestUnanswerable(
                f"Query from agent '{request.agent_name}' requires an interactive driver",
                request=request,
            )
        try:
            response = self.answer(inner)
        except ControlRequestUnanswerable as e:
            raise ControlRequestUnanswerable(
                f"Query from agent '{request.agent_name}': {e}", request=request
            ) from e
        return ControlResponse(request_id=request.id, value=response.value, approved=response.approved)


async def drive(handle: RunHandle, policy: SyncControlPolicy) -> RunResult:
    """
    Run `handle` to completion, answering requests with `policy`.

    Raises:
        ControlRequestUnanswerable: After closing the run, when `policy`
            cannot answer a request.
    """
    item = await handle.resume()
    while not isinstance(item, RunResult):
        if isinstance(item, CONTROL_REQUEST_TYPES):
            try:
                response = policy.answer(item)
            except ControlRequestUnanswerable:
                await handle.close()
                raise
            item = await handle.resume(response)
        else:
            item = await handle.resume()
    return item
