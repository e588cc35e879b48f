"""Tests for AppiumServerManager."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest
import requests

import appium_server_manager
from appium_server_manager import AppiumServerManager, ServerState, get_server_manager
from config import Config, ServerConfig
from publish_errors import AppiumServerError


def _process(lines=(), exit_code=None) -> MagicMock:
    proc = MagicMock()
    proc.pid = 4242
    proc.stdout = iter(lines)
    proc.poll.return_value = exit_code
    return proc


@pytest.fixture
def manager() -> AppiumServerManager:
    return AppiumServerManager(ServerConfig(host="127.0.0.1", port=4799), ready_timeout=1.0)


class TestHealthProbe:
    def test_status_ok(self, manager: AppiumServerManager) -> None:
        with patch("appium_server_manager.requests.get", return_value=MagicMock(status_code=200)) as get:
            assert manager.is_running() is True
        get.assert_called_once_with("http://127.0.0.1:4799/status", timeout=manager.probe_timeout)

    def test_falls_back_to_legacy_path(self, manager: AppiumServerManager) -> None:
        responses = [requests.ConnectionError("refused"), MagicMock(status_code=200)]
        with patch("appium_server_manager.requests.get", side_effect=responses) as get:
            assert manager.is_running() is True
        assert get.call_args_list[1].args[0] == "http://127.0.0.1:4799/wd/hub/status"

    def test_never_raises(self, manager: AppiumServerManager) -> None:
        with patch("appium_server_manager.requests.get", side_effect=requests.Timeout("slow")):
            assert manager.is_running() is False

    def test_non_200_is_not_running(self, manager: AppiumServerManager) -> None:
        with patch("appium_server_manager.requests.get", return_value=MagicMock(status_code=500)):
            assert manager.is_running() is False


class TestCommand:
    def test_flags(self, manager: AppiumServerManager) -> None:
        cmd = manager._build_command()
        assert cmd[1:] == ["--address", "127.0.0.1", "--port", "4799", "--log-level", "error"]

    def test_show_logs_and_base_path(self) -> None:
        config = ServerConfig.from_options({"show_logs": True, "base_path": "wd/hub"})
        cmd = AppiumServerManager(config)._build_command()
        assert cmd[cmd.index("--log-level") + 1] == "info"
        assert cmd[-2:] == ["--base-path", "/wd/hub"]


class TestEnsureRunning:
    def test_starts_once(self, manager: AppiumServerManager) -> None:
        proc = _process([Config.APPIUM_READY_MARKER + "\n"])
        with patch.object(manager, "is_running", return_value=False), \
                patch("appium_server_manager.subprocess.Popen", return_value=proc) as popen:
            manager.ensure_running()
            manager.ensure_running()

        popen.assert_called_once()
        assert manager.state is ServerState.RUNNING
        assert manager.owns_process

    def test_reuses_external_server(self, manager: AppiumServerManager) -> None:
        with patch.object(manager, "is_running", return_value=True), \
                patch("appium_server_manager.subprocess.Popen") as popen:
            manager.ensure_running()

        popen.assert_not_called()
        assert manager.state is ServerState.RUNNING
        assert not manager.owns_process

    def test_exit_before_ready(self, manager: AppiumServerManager) -> None:
        proc = _process(["Error: port in use\n"], exit_code=1)
        with patch.object(manager, "is_running", return_value=False), \
                patch("appium_server_manager.subprocess.Popen", return_value=proc):
            with pytest.raises(AppiumServerError, match="exited with code 1"):
                manager.ensure_running()

        assert manager.state is ServerState.STOPPED
        assert manager.process is None

    def test_binary_not_found(self, manager: AppiumServerManager) -> None:
        with patch.object(manager, "is_running", return_value=False), \
                patch("appium_server_manager.subprocess.Popen", side_effect=FileNotFoundError("appium")):
            with pytest.raises(AppiumServerError, match="command not found"):
                manager.ensure_running()

        assert manager.state is ServerState.STOPPED

    def test_no_ready_line_but_healthy(self) -> None:
        manager = AppiumServerManager(ServerConfig(port=4798), ready_timeout=0.0)
        proc = _process([])
        with patch.object(manager, "is_running", side_effect=[False, True]), \
                patch("appium_server_manager.subprocess.Popen", return_value=proc):
            manager.ensure_running()

        assert manager.state is ServerState.RUNNING

    def test_no_ready_line_and_unhealthy(self) -> None:
        manager = AppiumServerManager(ServerConfig(port=4797), ready_timeout=0.0)
        proc = _process([])
        with patch.object(manager, "is_running", return_value=False), \
                patch("appium_server_manager.subprocess.Popen", return_value=proc):
            with pytest.raises(AppiumServerError, match="did not start properly"):
                manager.ensure_running()

        proc.terminate.assert_called_once()
        assert manager.state is ServerState.STOPPED

    def test_interrupted_start_resets_state(self, manager: AppiumServerManager) -> None:
        proc = _process([])
        with patch.object(manager, "is_running", return_value=False), \
                patch("appium_server_manager.subprocess.Popen", return_value=proc), \
                patch.object(manager, "_wait_until_ready", side_effect=KeyboardInterrupt):
            with pytest.raises(KeyboardInterrupt):
                manager.ensure_running()

        proc.terminate.assert_called_once()
        assert manager.state is ServerState.STOPPED
        assert manager.process is None

        ready = _process([Config.APPIUM_READY_MARKER + "\n"])
        with patch.object(manager, "is_running", return_value=False), \
                patch("appium_server_manager.subprocess.Popen", return_value=ready):
            manager.ensure_running()

        assert manager.state is ServerState.RUNNING

    def test_unexpected_spawn_error_resets_state(self, manager: AppiumServerManager) -> None:
        with patch.object(manager, "is_running", return_value=False), \
                patch("appium_server_manager.subprocess.Popen", side_effect=ValueError("bad env")):
            with pytest.raises(ValueError):
                manager.ensure_running()

        assert manager.state is ServerState.STOPPED

    def test_start_in_progress_rejected(self, manager: AppiumServerManager) -> None:
        manager.state = ServerState.STARTING
        with pytest.raises(AppiumServerError, match="already in progress"):
            manager.ensure_running()


class TestStop:
    def test_noop_without_process(self, manager: AppiumServerManager) -> None:
        manager.stop()
        manager.stop()
        assert manager.state is ServerState.STOPPED

    def test_graceful(self, manager: AppiumServerManager) -> None:
        proc = _process()
        manager.process = proc
        manager.state = ServerState.RUNNING

        manager.stop()

        proc.terminate.assert_called_once()
        proc.kill.assert_not_called()
        assert manager.process is None
        assert manager.state is ServerState.STOPPED

    def test_kills_after_timeout(self, manager: AppiumServerManager) -> None:
        proc = _process()
        proc.wait.side_effect = [subprocess.TimeoutExpired("appium", 5), 0]
        manager.process = proc

        manager.stop(timeout=0.1)

        proc.kill.assert_called_once()
        assert manager.process is None


class TestGetServerManager:
    @pytest.fixture(autouse=True)
    def _reset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(appium_server_manager, "_server_manager", None)

    def test_shared_instance(self) -> None:
        assert get_server_manager() is get_server_manager()

    def test_same_config_returns_same(self) -> None:
        config = ServerConfig(port=4711)
        assert get_server_manager(config) is get_server_manager(config)

    def test_different_config_while_owning(self) -> None:
        first = get_server_manager(ServerConfig(port=4711))
        first.process = _process()
        with pytest.raises(AppiumServerError, match="already managed"):
            get_server_manager(ServerConfig(port=4712))
