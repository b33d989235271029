# src/geotoggle/tracking/service.py

from __future__ import annotations

"""
Tracking service.

Owns the STOPPED/RUNNING state machine and the per-run sample pipeline:

- Start/Stop commands go through one asyncio queue and are applied one at a
  time, in arrival order, by run().
- Start acquires a foreground token, opens a fresh sample log and subscribes to
  the location source. Any failure rolls back what was acquired and leaves the
  service STOPPED with an "interrupted" notification.
- While RUNNING, a single consumer task reads the location stream and fans each
  sample out to the log, the notification and the broadcast channel.
- Stop always wins: it cancels an in-flight Start, and cancelling run() stops
  the current run before returning.

Duplicate Start while RUNNING and duplicate Stop while STOPPED are no-ops.
"""

import asyncio
import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ..core.errors import PermissionDeniedError, ProviderError, ProviderFatalError, StorageError
from ..core.models import (
    ForegroundToken,
    LocationSample,
    LogHandle,
    ServiceRunState,
    StopReason,
    TrackingCommand,
)
from ..core.ports import (
    ForegroundGate,
    LocationSource,
    LocationStream,
    SampleLog,
    SamplePublisher,
    StateListener,
)
from .notifications import NotificationPresenter, TrackingStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Run:
    run_id: int
    started_at_ms: int
    token: ForegroundToken
    log: LogHandle
    stream: LocationStream
    consumer: asyncio.Task | None = None
    samples: int = 0
    write_failures: int = 0


@dataclass(frozen=True, slots=True)
class _Interrupt:
    """Internal command: force-stop run_id (ignored if that run already ended)."""

    run_id: int
    detail: str


class TrackingService:
    def __init__(
        self,
        *,
        source: LocationSource,
        gate: ForegroundGate,
        sample_log: SampleLog,
        presenter: NotificationPresenter,
        publisher: SamplePublisher,
        min_interval_ms: int = 2000,
        min_distance_m: float = 0.0,
        max_consecutive_write_failures: int = 3,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._source = source
        self._gate = gate
        self._sample_log = sample_log
        self._presenter = presenter
        self._publisher = publisher
        self._min_interval_ms = int(min_interval_ms)
        self._min_distance_m = float(min_distance_m)
        self._max_write_failures = max(1, int(max_consecutive_write_failures))
        self._clock = clock

        self._commands: asyncio.Queue[TrackingCommand | _Interrupt] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._finished = False
        self._state = ServiceRunState.STOPPED
        self._run: _Run | None = None
        self._run_ids = itertools.count(1)
        self._starting: asyncio.Task | None = None
        self._listeners: list[StateListener] = []

        self.latest_sample: LocationSample | None = None
        self.last_stop_reason: StopReason | None = None
        self.last_stop_detail: str | None = None

    # ---- read-only view ----

    @property
    def state(self) -> ServiceRunState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state == ServiceRunState.RUNNING

    @property
    def current_log_path(self) -> Path | None:
        run = self._run
        return run.log.path if run is not None else None

    @property
    def current_run_id(self) -> int | None:
        run = self._run
        return run.run_id if run is not None else None

    def add_state_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    # ---- command surface ----

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Route submit() onto loop before run() has started on it."""
        self._loop = loop
        self._finished = False

    def submit(self, command: TrackingCommand | str) -> None:
        """Queue a Start/Stop command. Fire-and-forget; safe to call from any thread."""
        cmd = TrackingCommand.parse(command) if isinstance(command, str) else command
        loop = self._loop
        if loop is None:
            if self._finished:
                logger.warning("Tracking service has shut down; dropping %s", cmd.value)
                return
            # Not serving yet: run() picks it up once started.
            self._enqueue(cmd)
            return
        try:
            loop.call_soon_threadsafe(self._enqueue, cmd)
        except RuntimeError:
            logger.warning("Tracking service loop is closed; dropping %s", cmd.value)

    def start(self) -> None:
        self.submit(TrackingCommand.START)

    def stop(self) -> None:
        self.submit(TrackingCommand.STOP)

    def _enqueue(self, item: TrackingCommand | _Interrupt) -> None:
        if item == TrackingCommand.STOP and self._starting is not None and not self._starting.done():
            logger.info("Stop requested during start; cancelling the start transition")
            self._starting.cancel()
        self._commands.put_nowait(item)

    async def join(self) -> None:
        """Wait until every command submitted so far has been applied."""
        await asyncio.sleep(0)
        await self._commands.join()

    # ---- worker ----

    async def run(self) -> None:
        """
        Command loop. Runs until cancelled; cancellation stops tracking first.

        To stop the service, cancel the coroutine/task.
        """
        self._loop = asyncio.get_running_loop()
        self._finished = False
        logger.info("Tracking service ready (state=%s)", self._state.value)
        try:
            while True:
                item = await self._commands.get()
                try:
                    await self._process(item)
                except Exception:
                    logger.exception("Tracking command failed item=%r", item)
                finally:
                    self._commands.task_done()
        finally:
            await self.shutdown()
            self._loop = None
            self._finished = True
            logger.info("Tracking service finished")

    async def shutdown(self) -> None:
        """Force STOPPED right now, bypassing the queue."""
        starting = self._starting
        if starting is not None and not starting.done():
            starting.cancel()
            await asyncio.gather(starting, return_exceptions=True)
        await self._stop(StopReason.REQUESTED)

    async def _process(self, item: TrackingCommand | _Interrupt) -> None:
        if isinstance(item, _Interrupt):
            run = self._run
            if run is None or run.run_id != item.run_id:
                logger.debug("Stale interrupt for run=%s ignored", item.run_id)
                return
            await self._stop(StopReason.INTERRUPTED, detail=item.detail)
            return

        if item == TrackingCommand.START:
            if self._state == ServiceRunState.RUNNING:
                logger.debug("Start ignored: already running (run=%s)", self.current_run_id)
                return
            task = asyncio.create_task(self._start(), name="geotoggle-start")
            self._starting = task
            try:
                await asyncio.wait({task})
            except asyncio.CancelledError:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                raise
            finally:
                self._starting = None
            if task.cancelled():
                logger.info("Start transition cancelled by Stop")
                return
            exc = task.exception()
            if exc is not None:
                raise exc
            return

        if self._state == ServiceRunState.STOPPED:
            logger.debug("Stop ignored: already stopped")
            return
        await self._stop(StopReason.REQUESTED)

    # ---- transitions ----

    async def _start(self) -> None:
        started_at_ms = int(self._clock() * 1000)
        run_id = next(self._run_ids)

        token: ForegroundToken | None = None
        log: LogHandle | None = None
        stream: LocationStream | None = None
        try:
            token = await self._gate.acquire(
                self._presenter.notification_id,
                self._presenter.render(TrackingStatus.STARTED),
            )
            log = self._sample_log.open(started_at_ms)
            stream = await self._source.subscribe(
                min_interval_ms=self._min_interval_ms,
                min_distance_m=self._min_distance_m,
            )
        except asyncio.CancelledError:
            await self._rollback(token, log, stream)
            self._presenter.present(TrackingStatus.STOPPED)
            raise
        except (PermissionDeniedError, StorageError, ProviderError) as e:
            logger.error("Start failed run=%s: %s", run_id, e)
            await self._rollback(token, log, stream)
            self._finish_stopped(StopReason.INTERRUPTED, str(e))
            return

        run = _Run(run_id=run_id, started_at_ms=started_at_ms, token=token, log=log, stream=stream)
        run.consumer = asyncio.create_task(self._consume(run), name=f"geotoggle-run-{run_id}")
        self._run = run
        self._state = ServiceRunState.RUNNING
        self.latest_sample = None
        self.last_stop_reason = None
        self.last_stop_detail = None

        self._presenter.present(TrackingStatus.STARTED)
        logger.info("Tracking started run=%s log=%s", run_id, log.path)
        self._notify(ServiceRunState.RUNNING, None)

    async def _rollback(
        self,
        token: ForegroundToken | None,
        log: LogHandle | None,
        stream: LocationStream | None,
    ) -> None:
        if stream is not None:
            try:
                await self._source.unsubscribe(stream)
            except Exception:
                logger.exception("Rollback: unsubscribe failed")
        if log is not None:
            try:
                self._sample_log.close(log)
            except Exception:
                logger.exception("Rollback: closing sample log failed")
        if token is not None:
            try:
                self._gate.release(token)
            except Exception:
                logger.exception("Rollback: releasing foreground token failed")

    async def _stop(self, reason: StopReason, *, detail: str | None = None) -> None:
        run = self._run
        if run is None:
            return

        # STOPPED first: whatever happens during teardown, we never stay RUNNING.
        self._run = None
        self._state = ServiceRunState.STOPPED

        consumer = run.consumer
        if consumer is not None and consumer is not asyncio.current_task() and not consumer.done():
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)

        try:
            await self._source.unsubscribe(run.stream)
        except Exception:
            logger.exception("Unsubscribe failed run=%s", run.run_id)
        try:
            self._sample_log.close(run.log)
        except Exception:
            logger.exception("Closing sample log failed run=%s", run.run_id)
        try:
            self._gate.release(run.token)
        except Exception:
            logger.exception("Releasing foreground token failed run=%s", run.run_id)

        logger.info(
            "Tracking stopped run=%s reason=%s samples=%s%s",
            run.run_id,
            reason.value,
            run.samples,
            f" detail={detail}" if detail else "",
        )
        self._finish_stopped(reason, detail)

    def _finish_stopped(self, reason: StopReason, detail: str | None) -> None:
        self.last_stop_reason = reason
        self.last_stop_detail = detail
        if reason == StopReason.INTERRUPTED:
            self._presenter.present(TrackingStatus.INTERRUPTED, self.latest_sample, detail=detail)
        else:
            self._presenter.present(TrackingStatus.STOPPED)
        self._notify(ServiceRunState.STOPPED, reason)

    def _notify(self, state: ServiceRunState, reason: StopReason | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(state, reason)
            except Exception:
                logger.exception("State listener failed state=%s", state.value)

    # ---- sample pipeline ----

    def _interrupt(self, run: _Run, detail: str) -> None:
        self._commands.put_nowait(_Interrupt(run.run_id, detail))

    async def _consume(self, run: _Run) -> None:
        while True:
            try:
                sample = await run.stream.receive()
            except ProviderFatalError as e:
                logger.error("Location subscription broke run=%s: %s", run.run_id, e)
                self._interrupt(run, str(e) or "location provider failed")
                return
            except ProviderError as e:
                logger.warning("Location fix failed run=%s: %s", run.run_id, e)
                continue

            if not self._handle_sample(run, sample):
                return

    def _handle_sample(self, run: _Run, sample: LocationSample) -> bool:
        run.samples += 1
        try:
            self._sample_log.append(run.log, sample)
            run.write_failures = 0
        except StorageError as e:
            run.write_failures += 1
            logger.warning(
                "Sample write failed run=%s (%s/%s): %s",
                run.run_id,
                run.write_failures,
                self._max_write_failures,
                e,
            )
            if run.write_failures >= self._max_write_failures:
                self._interrupt(run, f"sample log unavailable: {e}")
                return False

        self.latest_sample = sample
        self._presenter.present(TrackingStatus.RUNNING, sample)
        try:
            self._publisher.publish(sample)
        except Exception:
            logger.exception("Broadcast failed run=%s", run.run_id)
        return True
