# tests/test_tracking_service.py

from __future__ import annotations

import asyncio
import random
import time
from pathlib import Path

import pytest

from geotoggle.core.models import LocationSample, ServiceRunState, StopReason, TrackingCommand
from geotoggle.tracking.notifications import TEXT_STARTED
from geotoggle.tracking.sample_log import read_samples

from .fakes import FakeForegroundGate, Pipeline, build_pipeline, eventually, serving


def _lines(path: Path) -> list[str]:
    return path.read_text("utf-8").splitlines()


@pytest.mark.asyncio
async def test_start_opens_run_and_shows_started_notification(pipeline: Pipeline) -> None:
    async with serving(pipeline.service) as service:
        service.start()
        await service.join()

        assert service.state == ServiceRunState.RUNNING
        assert pipeline.gate.acquired == 1
        assert len(pipeline.log.opened) == 1
        assert pipeline.source.active
        assert service.current_log_path is not None
        assert service.current_log_path.name.startswith("location_data_")
        assert pipeline.sink.current(1).text == TEXT_STARTED


@pytest.mark.asyncio
async def test_duplicate_start_acquires_one_token_and_opens_one_log(pipeline: Pipeline) -> None:
    async with serving(pipeline.service) as service:
        service.start()
        service.start()
        await service.join()

        assert service.state == ServiceRunState.RUNNING
        assert pipeline.gate.acquired == 1
        assert len(pipeline.log.opened) == 1


@pytest.mark.asyncio
async def test_stop_while_stopped_is_noop(pipeline: Pipeline) -> None:
    async with serving(pipeline.service) as service:
        service.stop()
        service.stop()
        await service.join()

        assert service.state == ServiceRunState.STOPPED
        assert service.last_stop_reason is None
        assert pipeline.gate.acquired == 0
        assert pipeline.sink.history == []


@pytest.mark.asyncio
async def test_stop_releases_everything(pipeline: Pipeline) -> None:
    async with serving(pipeline.service) as service:
        service.start()
        await service.join()
        service.stop()
        await service.join()

        assert service.state == ServiceRunState.STOPPED
        assert service.last_stop_reason == StopReason.REQUESTED
        assert pipeline.gate.outstanding == set()
        assert pipeline.log.open_handles == 0
        assert not pipeline.source.active
        # A normal stop clears the notification.
        assert pipeline.sink.current(1) is None


@pytest.mark.asyncio
async def test_samples_are_logged_in_order_and_shown(pipeline: Pipeline) -> None:
    listener = pipeline.broadcaster.listen()

    async with serving(pipeline.service) as service:
        service.start()
        await service.join()
        log_path = service.current_log_path

        pipeline.source.push_fix(LocationSample(1000, 10.0, 20.0))
        pipeline.source.push_fix(LocationSample(2000, 10.1, 20.1))
        await eventually(lambda: service.latest_sample is not None and service.latest_sample.captured_at_ms == 2000)

        assert _lines(log_path) == ["1000,10.000000,20.000000", "2000,10.100000,20.100000"]
        assert pipeline.sink.current(1).text == "Lat: 10.100000, Lon: 20.100000"

        first = await asyncio.wait_for(listener.get(), timeout=1.0)
        second = await asyncio.wait_for(listener.get(), timeout=1.0)
        assert (first["latitude"], first["longitude"]) == (10.0, 20.0)
        assert (second["latitude"], second["longitude"]) == (10.1, 20.1)


@pytest.mark.asyncio
async def test_slow_broadcast_callback_does_not_delay_the_log(pipeline: Pipeline) -> None:
    pipeline.broadcaster.add_callback(lambda payload: time.sleep(0.5))

    async with serving(pipeline.service) as service:
        service.start()
        await service.join()
        log_path = service.current_log_path

        started = time.monotonic()
        pipeline.source.push_fix(LocationSample(1000, 1.0, 2.0))
        pipeline.source.push_fix(LocationSample(2000, 1.5, 2.5))
        await eventually(lambda: len(_lines(log_path)) == 2)
        assert time.monotonic() - started < 0.4

    pipeline.broadcaster.close()


@pytest.mark.asyncio
async def test_many_samples_one_line_each(pipeline: Pipeline) -> None:
    samples = [LocationSample(1000 + i, 45.0 + i / 1000, 7.0 - i / 1000) for i in range(50)]

    async with serving(pipeline.service) as service:
        service.start()
        await service.join()
        log_path = service.current_log_path

        for s in samples:
            pipeline.source.push_fix(s)
        await eventually(lambda: service.latest_sample == samples[-1])

        assert read_samples(log_path) == [
            LocationSample(s.captured_at_ms, round(s.latitude, 6), round(s.longitude, 6)) for s in samples
        ]


@pytest.mark.asyncio
async def test_transient_provider_error_is_skipped(pipeline: Pipeline) -> None:
    async with serving(pipeline.service) as service:
        service.start()
        await service.join()

        pipeline.source.push_error("no satellites")
        pipeline.source.push_fix(LocationSample(5000, 1.0, 2.0))
        await eventually(lambda: service.latest_sample is not None)

        assert service.state == ServiceRunState.RUNNING
        assert _lines(service.current_log_path) == ["5000,1.000000,2.000000"]


@pytest.mark.asyncio
async def test_fatal_provider_error_interrupts_run(pipeline: Pipeline) -> None:
    states: list[tuple[ServiceRunState, StopReason | None]] = []
    pipeline.service.add_state_listener(lambda s, r: states.append((s, r)))

    async with serving(pipeline.service) as service:
        service.start()
        await service.join()

        pipeline.source.fail("permission revoked")
        await eventually(lambda: service.state == ServiceRunState.STOPPED)

        assert service.last_stop_reason == StopReason.INTERRUPTED
        assert pipeline.log.open_handles == 0
        assert pipeline.log.closed[0].closed
        assert pipeline.gate.outstanding == set()
        shown = pipeline.sink.current(1)
        assert shown is not None
        assert shown.text.startswith("Tracking interrupted")
        assert "permission revoked" in shown.text
        assert states[-1] == (ServiceRunState.STOPPED, StopReason.INTERRUPTED)


@pytest.mark.asyncio
async def test_location_permission_revoked_while_running(pipeline: Pipeline) -> None:
    async with serving(pipeline.service) as service:
        service.start()
        await service.join()

        pipeline.permissions.revoke("location")
        await eventually(lambda: service.state == ServiceRunState.STOPPED)
        assert service.last_stop_reason == StopReason.INTERRUPTED


@pytest.mark.asyncio
async def test_three_consecutive_write_failures_force_stop(tmp_path: Path) -> None:
    p = build_pipeline(tmp_path / "samples", fail_appends=None)

    async with serving(p.service) as service:
        service.start()
        await service.join()

        for i in range(3):
            p.source.push_fix(LocationSample(1000 * (i + 1), 10.0, 20.0))
        await eventually(lambda: service.state == ServiceRunState.STOPPED)

        assert p.log.append_calls == 3
        assert service.last_stop_reason == StopReason.INTERRUPTED
        assert "sample log unavailable" in (service.last_stop_detail or "")
        assert p.log.open_handles == 0


@pytest.mark.asyncio
async def test_write_failure_counter_resets_on_success(tmp_path: Path) -> None:
    p = build_pipeline(tmp_path / "samples", fail_appends=2)

    async with serving(p.service) as service:
        service.start()
        await service.join()
        log_path = service.current_log_path

        for i in range(4):
            p.source.push_fix(LocationSample(1000 * (i + 1), 10.0, 20.0 + i))
        await eventually(lambda: p.log.append_calls == 4)
        await eventually(lambda: service.latest_sample is not None and service.latest_sample.captured_at_ms == 4000)

        assert service.state == ServiceRunState.RUNNING
        assert _lines(log_path) == ["3000,10.000000,22.000000", "4000,10.000000,23.000000"]


@pytest.mark.asyncio
async def test_denied_foreground_token_keeps_service_stopped(tmp_path: Path) -> None:
    p = build_pipeline(tmp_path / "samples", gate=FakeForegroundGate(deny=True))

    async with serving(p.service) as service:
        service.start()
        await service.join()

        assert service.state == ServiceRunState.STOPPED
        assert service.last_stop_reason == StopReason.INTERRUPTED
        assert p.log.opened == []
        assert not p.source.active
        assert p.sink.current(1).text.startswith("Tracking interrupted")


@pytest.mark.asyncio
async def test_missing_location_permission_rolls_back_start(pipeline: Pipeline) -> None:
    pipeline.permissions.revoke("location")

    async with serving(pipeline.service) as service:
        service.start()
        await service.join()

        assert service.state == ServiceRunState.STOPPED
        assert pipeline.gate.acquired == 1
        assert pipeline.gate.outstanding == set()
        assert pipeline.log.open_handles == 0


@pytest.mark.asyncio
async def test_stop_cancels_an_in_flight_start(tmp_path: Path) -> None:
    gate = FakeForegroundGate(block=asyncio.Event())
    p = build_pipeline(tmp_path / "samples", gate=gate)

    async with serving(p.service) as service:
        service.start()
        await asyncio.wait_for(gate.entered.wait(), timeout=1.0)

        service.stop()
        await asyncio.wait_for(service.join(), timeout=1.0)

        assert service.state == ServiceRunState.STOPPED
        assert gate.acquired == 0
        assert p.log.opened == []
        assert not p.source.active

        # The next Start goes through normally.
        gate.block = None
        service.start()
        await service.join()
        assert service.state == ServiceRunState.RUNNING


@pytest.mark.asyncio
async def test_cancelling_the_worker_stops_tracking(pipeline: Pipeline) -> None:
    async with serving(pipeline.service) as service:
        service.start()
        await service.join()
        assert service.running

    assert pipeline.service.state == ServiceRunState.STOPPED
    assert pipeline.gate.outstanding == set()
    assert pipeline.log.open_handles == 0


@pytest.mark.asyncio
async def test_each_run_gets_its_own_log(pipeline: Pipeline) -> None:
    async with serving(pipeline.service) as service:
        for _ in range(3):
            service.start()
            service.stop()
        await service.join()

    names = {h.path.name for h in pipeline.log.opened}
    assert len(names) == 3


@pytest.mark.asyncio
async def test_any_command_sequence_ends_in_the_last_commanded_state(tmp_path: Path) -> None:
    rnd = random.Random(1234)

    for round_no in range(15):
        p = build_pipeline(tmp_path / f"samples-{round_no}")
        commands = [rnd.choice([TrackingCommand.START, TrackingCommand.STOP]) for _ in range(rnd.randint(1, 12))]

        async with serving(p.service) as service:
            for cmd in commands:
                service.submit(cmd)
            await service.join()

            expected = ServiceRunState.RUNNING if commands[-1] == TrackingCommand.START else ServiceRunState.STOPPED
            assert service.state == expected, commands
            assert len(p.gate.outstanding) == (1 if expected == ServiceRunState.RUNNING else 0)
            assert p.log.open_handles == (1 if expected == ServiceRunState.RUNNING else 0)


@pytest.mark.asyncio
async def test_submit_accepts_command_names(pipeline: Pipeline) -> None:
    async with serving(pipeline.service) as service:
        service.submit("START")
        await service.join()
        assert service.running

        with pytest.raises(ValueError):
            service.submit("pause")
