"""End-to-end tests for YouTubeShortsPoster on a fake driver."""

from __future__ import annotations

import json
import os
from unittest.mock import MagicMock

import pytest

from appium_server_manager import AppiumServerManager
from poll_spec import PollSpec
from posters import get_poster
from posters.base_poster import ResolvedVia
from posters.youtube_shorts_poster import YouTubeShortsPoster, categorize_error
from publish_errors import (
    AppiumServerError,
    ElementNotFoundError,
    PublishValidationError,
    SessionError,
    UploadTimeoutError,
)

POLL = {"options": ["Left door", "Right door"], "question": "Which door?", "duration_days": 7}


@pytest.fixture
def server_manager() -> MagicMock:
    manager = MagicMock(spec=AppiumServerManager)
    manager.owns_process = True
    return manager


@pytest.fixture
def poster(server_manager, driver_factory, clock, tmp_path) -> YouTubeShortsPoster:
    return YouTubeShortsPoster(
        server_manager=server_manager,
        driver_factory=driver_factory,
        probe_timeout_s=0,
        upload_timeout_s=30,
        poll_interval_s=5,
        flow_log_dir=str(tmp_path / "flow_logs"),
        error_log_dir=str(tmp_path / "error_logs"),
        sleep=clock.sleep,
        clock=clock,
    )


class TestPublish:
    def test_success(self, poster, server_manager, driver_factory, fake_driver, video_file) -> None:
        url = poster.publish(video_file, "Pick a door", POLL)

        assert url.startswith("https://youtube.com/shorts/choicestream_")
        assert poster.last_result.resolved_via is ResolvedVia.PLACEHOLDER
        server_manager.ensure_running.assert_called_once()
        assert len(driver_factory.calls) == 1
        assert fake_driver.quit_count == 1
        server_manager.stop.assert_called_once()
        assert poster.session is None

    def test_accepts_poll_spec(self, poster, video_file) -> None:
        assert poster.publish(video_file, "c", PollSpec.build(["A", "B"]))

    def test_flow_log_records_success(self, poster, video_file, tmp_path) -> None:
        poster.publish(video_file, "c", POLL)

        log_dir = tmp_path / "flow_logs"
        (log_file,) = os.listdir(log_dir)
        with open(log_dir / log_file, encoding="utf-8") as f:
            entries = [json.loads(line) for line in f]
        assert entries[-1]["event"] == "success"

    def test_missing_video_never_starts_server(self, poster, server_manager, driver_factory) -> None:
        with pytest.raises(PublishValidationError, match="Video file not found"):
            poster.publish("/nonexistent/final_movie_1.mp4", "c", POLL)

        server_manager.ensure_running.assert_not_called()
        assert driver_factory.calls == []

    def test_one_option_never_starts_server(self, poster, server_manager, video_file) -> None:
        with pytest.raises(PublishValidationError):
            poster.publish(video_file, "c", {"options": ["Only one"]})

        server_manager.ensure_running.assert_not_called()

    def test_caption_failure_closes_once(self, poster, server_manager, fake_driver, video_file, tmp_path) -> None:
        fake_driver.absent.add("Caption your Short")

        with pytest.raises(ElementNotFoundError) as exc_info:
            poster.publish(video_file, "c", POLL)

        assert exc_info.value.step_id == "set_caption"
        assert fake_driver.quit_count == 1
        server_manager.stop.assert_called_once()
        assert poster.last_error_path is not None
        with open(poster.last_error_path, encoding="utf-8") as f:
            record = json.load(f)
        assert record["phase"] == "upload"
        assert record["error_class"] == "ElementNotFoundError"
        assert os.path.exists(record["screenshot_file"])

    def test_server_failure(self, poster, server_manager, driver_factory, video_file) -> None:
        server_manager.ensure_running.side_effect = AppiumServerError("exited with code 1")

        with pytest.raises(AppiumServerError):
            poster.publish(video_file, "c", POLL)

        assert driver_factory.calls == []

    def test_keep_server_running(self, poster, server_manager, video_file) -> None:
        poster.keep_server_running = True
        poster.publish(video_file, "c", POLL)
        server_manager.stop.assert_not_called()

    def test_external_server_left_alone(self, poster, server_manager, video_file) -> None:
        server_manager.owns_process = False
        poster.publish(video_file, "c", POLL)
        server_manager.stop.assert_not_called()

    def test_stop_error_does_not_mask(self, poster, server_manager, fake_driver, video_file) -> None:
        fake_driver.absent.add("Caption your Short")
        server_manager.stop.side_effect = OSError("no such process")

        with pytest.raises(ElementNotFoundError):
            poster.publish(video_file, "c", POLL)

    def test_unexpected_error_is_logged_and_captured(self, poster, server_manager, fake_driver, video_file,
                                                     tmp_path) -> None:
        fake_driver.activate_app = MagicMock(side_effect=RuntimeError("instrumentation crashed"))

        with pytest.raises(RuntimeError, match="instrumentation crashed"):
            poster.publish(video_file, "c", POLL)

        assert fake_driver.quit_count == 1
        server_manager.stop.assert_called_once()
        with open(poster.last_error_path, encoding="utf-8") as f:
            record = json.load(f)
        assert record["phase"] == "upload"
        assert record["error_class"] == "RuntimeError"

        log_dir = tmp_path / "flow_logs"
        (log_file,) = os.listdir(log_dir)
        with open(log_dir / log_file, encoding="utf-8") as f:
            entries = [json.loads(line) for line in f]
        assert entries[-1]["event"] == "failure"
        assert entries[-1]["reason"] == "upload: RuntimeError: instrumentation crashed"

    def test_upload_unconfirmed(self, poster, fake_driver, clock, video_file) -> None:
        fake_driver.absent.update({"Your Short", "Short uploaded", "Upload complete"})

        with pytest.raises(UploadTimeoutError):
            poster.publish(video_file, "c", POLL)

        assert fake_driver.taps[-1] == '//*[@text="Upload"]'
        assert fake_driver.quit_count == 1


class TestPost:
    def test_success(self, poster, video_file) -> None:
        result = poster.post(video_file, "c", POLL)
        assert result.success
        assert result.platform == "youtube_shorts"
        assert result.resolved_via is ResolvedVia.PLACEHOLDER

    def test_validation_failure(self, poster) -> None:
        result = poster.post("/missing.mp4", "c", POLL)
        assert not result.success
        assert result.error_category == "validation"
        assert result.retryable is False

    def test_ui_failure(self, poster, fake_driver, video_file) -> None:
        fake_driver.absent.add("Create a Short")
        result = poster.post(video_file, "c", POLL)
        assert result.error_type == "ElementNotFoundError"
        assert result.error_category == "ui"
        assert result.retryable is True
        assert result.screenshot_path is not None

    def test_unexpected_failure(self, poster, fake_driver, video_file) -> None:
        fake_driver.activate_app = MagicMock(side_effect=RuntimeError("instrumentation crashed"))
        result = poster.post(video_file, "c", POLL)
        assert result.error_type == "RuntimeError"
        assert result.error_category == "unknown"
        assert result.screenshot_path is not None


class TestConnect:
    def test_connect_and_cleanup(self, poster, server_manager, fake_driver) -> None:
        assert poster.connect() is True
        assert poster.session.is_open

        poster.cleanup()
        poster.cleanup()

        assert fake_driver.quit_count == 1
        assert server_manager.stop.call_count == 2

    def test_connect_failure(self, poster, server_manager) -> None:
        server_manager.ensure_running.side_effect = AppiumServerError("boom")
        assert poster.connect() is False


@pytest.mark.parametrize(
    ("error", "category", "retryable"),
    [
        (PublishValidationError("bad"), "validation", False),
        (AppiumServerError("down"), "infrastructure", True),
        (SessionError("lost"), "infrastructure", True),
        (ElementNotFoundError("by-text", "Upload"), "ui", True),
        (UploadTimeoutError(600), "timeout", False),
        (RuntimeError("?"), "unknown", True),
    ],
)
def test_categorize_error(error, category, retryable) -> None:
    assert categorize_error(error) == (category, retryable)


class TestFactory:
    def test_youtube(self, server_manager) -> None:
        assert isinstance(get_poster("YouTube_Shorts", server_manager=server_manager), YouTubeShortsPoster)

    def test_unsupported(self) -> None:
        with pytest.raises(ValueError, match="Unsupported platform"):
            get_poster("vimeo")
