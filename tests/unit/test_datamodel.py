from __future__ import annotations

import logging

import pytest

from dvtimeline.datamodel import DataModel
from dvtimeline.errors import InvalidChannelError, NotPopulatedError
from dvtimeline.models import ModelStatus, VideoInfo
from tests.conftest import GatedStream, make_frame, make_report_xml


FIRST = make_report_xml([make_frame(1, 100, 0.1, 0.2), make_frame(2, 200, 0.3, 0.4)])
SECOND = make_report_xml([make_frame(7, 100, 7.1, 7.2), make_frame(8, 200, 8.3, 8.4)])


@pytest.fixture
def model():
    dm = DataModel()
    yield dm
    dm.close()


def test_query_before_populate_raises(model: DataModel) -> None:
    assert model.status == ModelStatus.EMPTY
    with pytest.raises(NotPopulatedError):
        model.get_video_info(100, 0)


def test_populate_then_query(model: DataModel) -> None:
    events: list[str] = []
    model.connect_populated(lambda: events.append("populated"))
    model.connect_error(lambda reason: events.append(f"error:{reason}"))

    model.populate(FIRST)
    assert model.wait_until_settled(timeout=5)

    assert events == ["populated"]
    assert model.status == ModelStatus.READY
    assert model.get_video_info(160, 0) == VideoInfo(2, 0.3, 0.4)
    assert model.get_video_info(120, 1) == (1, 0.1, 0.2)


def test_invalid_channel_raises(model: DataModel) -> None:
    model.populate(FIRST)
    model.wait_until_settled(timeout=5)
    with pytest.raises(InvalidChannelError):
        model.get_video_info(100, 2)


def test_populate_returns_before_parsing_finishes(model: DataModel) -> None:
    stream = GatedStream(FIRST)
    task = model.populate(stream)
    assert model.status == ModelStatus.POPULATING
    assert not task.done()
    with pytest.raises(NotPopulatedError):
        model.get_video_info(100, 0)
    stream.release()
    task.wait(timeout=5)
    assert model.status == ModelStatus.READY


def test_failure_discards_previous_index(model: DataModel) -> None:
    reasons: list[str] = []
    model.connect_error(reasons.append)
    model.populate(FIRST)
    model.wait_until_settled(timeout=5)

    model.populate(b"<frames><frame n='1'/></frames>")
    model.wait_until_settled(timeout=5)

    assert model.status == ModelStatus.FAILED
    assert model.index is None
    assert len(reasons) == 1
    assert "missing required attribute 'abst'" in reasons[0]
    assert model.last_error == reasons[0]
    with pytest.raises(NotPopulatedError):
        model.get_video_info(100, 0)


def test_empty_report_reports_error(model: DataModel) -> None:
    reasons: list[str] = []
    model.connect_error(reasons.append)
    model.populate(make_report_xml([]))
    model.wait_until_settled(timeout=5)
    assert model.status == ModelStatus.FAILED
    assert reasons == ["Report contains no frames."]


def test_second_populate_wins_over_slow_first(model: DataModel) -> None:
    populated: list[int] = []
    model.connect_populated(lambda: populated.append(model.get_video_info(100, 0).frame_number))

    slow = GatedStream(FIRST)
    first_task = model.populate(slow)
    slow.reading.wait(timeout=5)
    model.populate(SECOND)
    assert model.wait_until_settled(timeout=5)
    assert model.get_video_info(100, 0).frame_number == 7

    slow.release()
    first_task.wait(timeout=5)

    assert populated == [7]
    assert model.status == ModelStatus.READY
    assert model.get_video_info(100, 0).frame_number == 7
    assert model.get_video_info(199, 1) == VideoInfo(8, 8.3, 8.4)


def test_late_failure_of_superseded_task_is_ignored(model: DataModel) -> None:
    reasons: list[str] = []
    model.connect_error(reasons.append)

    slow = GatedStream(b"<broken")
    first_task = model.populate(slow)
    model.populate(SECOND)
    model.wait_until_settled(timeout=5)
    slow.release()
    first_task.wait(timeout=5)

    assert reasons == []
    assert model.status == ModelStatus.READY


def test_late_success_does_not_override_newer_failure(model: DataModel) -> None:
    slow = GatedStream(FIRST)
    first_task = model.populate(slow)
    model.populate(b"<broken")
    model.wait_until_settled(timeout=5)
    slow.release()
    first_task.wait(timeout=5)

    assert model.status == ModelStatus.FAILED
    assert model.index is None


def test_dispatcher_applies_completion_on_owner_context() -> None:
    pending: list = []
    with DataModel(dispatcher=pending.append) as dm:
        task = dm.populate(FIRST)
        task.wait(timeout=5)
        assert dm.status == ModelStatus.POPULATING
        assert len(pending) == 1
        pending.pop()()
        assert dm.status == ModelStatus.READY
        assert dm.get_video_info(200, 0).frame_number == 2


def test_listener_exception_is_logged(model: DataModel, caplog) -> None:
    def bad_listener() -> None:
        raise RuntimeError("listener failed")

    after: list[bool] = []
    model.connect_populated(bad_listener)
    model.connect_populated(lambda: after.append(True))
    with caplog.at_level(logging.ERROR, logger="dvtimeline.datamodel"):
        model.populate(FIRST)
        model.wait_until_settled(timeout=5)
    assert after == [True]
    assert model.status == ModelStatus.READY
    assert any("raised" in rec.getMessage() for rec in caplog.records)


def test_failing_dispatcher_settles_as_error() -> None:
    def closed_loop(_callback) -> None:
        raise RuntimeError("event loop is closed")

    reasons: list[str] = []
    with DataModel(dispatcher=closed_loop) as dm:
        dm.connect_error(reasons.append)
        task = dm.populate(FIRST)
        task.wait(timeout=5)
        assert task._future.exception(timeout=5) is None
        assert dm.wait_until_settled(timeout=5)
        assert dm.status == ModelStatus.FAILED
        assert len(reasons) == 1
        assert "event loop is closed" in reasons[0]


def test_populate_after_close_restores_state() -> None:
    dm = DataModel()
    dm.populate(FIRST)
    dm.wait_until_settled(timeout=5)
    dm.close()
    with pytest.raises(RuntimeError):
        dm.populate(SECOND)
    assert dm.status == ModelStatus.READY
    assert dm.wait_until_settled(timeout=0)
    assert dm.get_video_info(100, 0).frame_number == 1


def test_populate_on_closed_empty_model_stays_empty() -> None:
    dm = DataModel()
    dm.close()
    with pytest.raises(RuntimeError):
        dm.populate(FIRST)
    assert dm.status == ModelStatus.EMPTY
    assert dm.wait_until_settled(timeout=0)


def test_get_video_infos_batch(model: DataModel) -> None:
    with pytest.raises(NotPopulatedError):
        model.get_video_infos([100], 0)
    model.populate(FIRST)
    model.wait_until_settled(timeout=5)
    assert model.get_video_infos([0, 160, 2**70], 1) == [
        VideoInfo(1, 0.1, 0.2),
        VideoInfo(2, 0.3, 0.4),
        VideoInfo(2, 0.3, 0.4),
    ]
    with pytest.raises(InvalidChannelError):
        model.get_video_infos([100], 1.0)
