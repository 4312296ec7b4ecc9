import threading

import pytest

from dryness.common.models import CHObservation, Observation, RegionFeature, SHObservation
from dryness.pipeline.executor import (
    CompletedEvent,
    EventKind,
    ExecutorState,
    FailedEvent,
    HANDLERS,
    FilterBBoxCommand,
    GridInterpolateCommand,
    MatchPointsCommand,
    ProcessCHSHCommand,
    ProgressEvent,
    ProgressExecutor,
    run_command,
)


def _region(index, name, x0, y0, x1, y1):
    ring = [[x0, y0], [x1, y0], [x1, y1], [x0, y1], [x0, y0]]
    return RegionFeature(index=index, name=name, geometry={"type": "Polygon", "coordinates": [ring]})


REGIONS = [_region(0, "A", 0, 0, 1, 1), _region(1, "B", 2, 0, 3, 1)]


def _collect(executor):
    return list(executor.events(timeout=30))


@pytest.mark.integration
def test_chsh_command_streams_progress_then_completes():
    points = [Observation(lat=0.5, long=0.5, ch=50.0, sh=70.0), Observation(lat=0.5, long=2.5, ch=400.0, sh=130.0)]
    executor = ProgressExecutor()
    executor.submit(ProcessCHSHCommand(points=points, regions=REGIONS))

    events = _collect(executor)

    assert isinstance(events[-1], CompletedEvent)
    assert events[-1].kind is EventKind.COMPLETE
    progress = [event for event in events if isinstance(event, ProgressEvent)]
    fractions = [event.fraction for event in progress]
    assert progress and fractions == sorted(fractions)
    assert all(0.0 <= fraction <= 1.0 for fraction in fractions)
    assert executor.state is ExecutorState.COMPLETED

    outcome = executor.result()
    assert [r.region_name for r in outcome.results] == ["A", "B"]
    assert [r.n_total for r in outcome.results] == [1, 1]
    assert outcome.skipped_regions == []


@pytest.mark.integration
def test_failed_command_emits_single_error_event():
    executor = ProgressExecutor()
    executor.submit(MatchPointsCommand(ch_points=[], sh_points=[], method="nearest"))

    events = _collect(executor)

    assert len(events) == 1
    assert isinstance(events[0], FailedEvent)
    assert events[0].error_code == "CONFIG_ERROR"
    assert executor.state is ExecutorState.FAILED
    with pytest.raises(RuntimeError):
        executor.result()


@pytest.mark.integration
def test_cancelled_run_emits_nothing():
    executor = ProgressExecutor()
    executor.cancel()
    executor.submit(ProcessCHSHCommand(points=[], regions=REGIONS))

    assert _collect(executor) == []
    assert executor.wait(timeout=30)
    assert executor.state is ExecutorState.CANCELLED


@pytest.mark.integration
def test_cancel_during_run_stops_before_terminal_event(monkeypatch):
    started = threading.Event()
    release = threading.Event()
    process_chsh = HANDLERS[ProcessCHSHCommand]

    def _gated(command, progress, logger):
        progress.update(0.0, "started")
        started.set()
        assert release.wait(30)
        return process_chsh(command, progress, logger)

    monkeypatch.setitem(HANDLERS, ProcessCHSHCommand, _gated)
    points = [Observation(lat=0.5, long=0.5, ch=50.0, sh=70.0)]
    executor = ProgressExecutor()
    executor.submit(ProcessCHSHCommand(points=points, regions=REGIONS))

    assert started.wait(30)
    executor.cancel()
    release.set()
    events = _collect(executor)

    assert events == [ProgressEvent(fraction=0.0, message="started")]
    assert executor.wait(timeout=30)
    assert executor.state is ExecutorState.CANCELLED
    with pytest.raises(RuntimeError):
        executor.result()


@pytest.mark.integration
def test_executor_is_single_use():
    executor = ProgressExecutor()
    executor.submit(FilterBBoxCommand(points=[], regions=REGIONS))
    _collect(executor)

    with pytest.raises(RuntimeError):
        executor.submit(FilterBBoxCommand(points=[], regions=REGIONS))


def test_run_command_synchronously():
    ch = [CHObservation(lat=0.5, lon=0.5, ch=10.0, nogrid="1")]
    sh = [SHObservation(lat=0.5, lon=0.5, sh=90.0, nogrid="1")]

    assert run_command(MatchPointsCommand(ch_points=ch, sh_points=sh, method="identifier")) == [
        Observation(lat=0.5, long=0.5, ch=10.0, sh=90.0)
    ]
    kept = run_command(
        FilterBBoxCommand(points=[Observation(lat=0.5, long=1.5, ch=1, sh=1), Observation(lat=0.5, long=0.5, ch=2, sh=2)], regions=REGIONS)
    )
    assert [p.ch for p in kept] == [2]

    with pytest.raises(TypeError):
        run_command(object())


@pytest.mark.integration
def test_grid_interpolation_command_completes():
    ch = [CHObservation(lat=0.5, lon=0.5, ch=10.0), CHObservation(lat=0.5, lon=2.5, ch=400.0)]
    sh = [SHObservation(lat=0.5, lon=0.5, sh=90.0)]
    executor = ProgressExecutor()
    executor.submit(GridInterpolateCommand(ch_points=ch, sh_points=sh, regions=REGIONS))

    events = _collect(executor)

    assert isinstance(events[-1], CompletedEvent)
    filled = executor.result()
    assert filled
    assert {p.sh for p in filled} == {90.0}
    assert {p.ch for p in filled if p.long > 2.1} == {400.0}
