"""
Appium Server Manager.

This module handles the lifecycle of the Appium server process:
- Probe whether a server already answers on host:port (/status, /wd/hub/status)
- Start an Appium server with bind address, port and log verbosity
- Wait for the "REST http interface listener started" line on stdout,
  falling back to a health probe when the line doesn't show up in time
- Stop server gracefully (SIGTERM then SIGKILL if needed)

The manager is an explicit lifecycle object (STOPPED -> STARTING -> RUNNING)
and one instance per process is shared through get_server_manager().
"""

import os
import sys
import time
import signal
import logging
import subprocess
import threading
from enum import Enum
from typing import Callable, List, Optional

import requests

from config import Config, ServerConfig
from publish_errors import AppiumServerError

logger = logging.getLogger(__name__)


class ServerState(Enum):
    """Lifecycle state of the managed Appium process."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


class AppiumServerManager:
    """
    Manages the lifecycle of a single Appium server instance.

    Usage:
        manager = AppiumServerManager(ServerConfig.from_options({'port': 4723}))
        try:
            manager.ensure_running()
            # ... use Appium at manager.config.base_url ...
        finally:
            manager.stop()

    Or as context manager:
        with AppiumServerManager(config) as manager:
            ...
    """

    def __init__(
        self,
        config: ServerConfig = None,
        ready_timeout: float = Config.APPIUM_READY_GRACE_S,
        probe_timeout: float = Config.APPIUM_PROBE_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ServerConfig()
        self.ready_timeout = ready_timeout
        self.probe_timeout = probe_timeout
        self._clock = clock
        self.process: Optional[subprocess.Popen] = None
        self.state = ServerState.STOPPED
        self._ready = threading.Event()
        self._reader: Optional[threading.Thread] = None

    @property
    def owns_process(self) -> bool:
        """True if this manager spawned the server and is responsible for stopping it."""
        return self.process is not None

    def __enter__(self):
        self.ensure_running()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False  # Don't suppress exceptions

    def _get_env(self) -> dict:
        """Get environment variables with Android SDK paths."""
        env = os.environ.copy()
        sdk = Config.ANDROID_SDK_PATH
        if sdk:
            env['ANDROID_HOME'] = sdk
            env['ANDROID_SDK_ROOT'] = sdk
            env['PATH'] = os.pathsep.join([
                os.path.join(sdk, 'platform-tools'),
                env.get('PATH', ''),
            ])
        return env

    def _build_command(self) -> List[str]:
        """Build the Appium server command."""
        if Config.APPIUM_BINARY:
            appium_cmd = Config.APPIUM_BINARY
        elif sys.platform == 'win32':
            # Use full path on Windows to avoid PATH issues in subprocess
            npm_path = os.path.join(os.environ.get('APPDATA', ''), 'npm')
            appium_cmd = os.path.join(npm_path, 'appium.cmd')
        else:
            appium_cmd = 'appium'

        cmd = [
            appium_cmd,
            '--address', self.config.host,
            '--port', str(self.config.port),
            '--log-level', 'info' if self.config.show_logs else 'error',
        ]
        if self.config.base_path:
            cmd += ['--base-path', self.config.base_path]
        return cmd

    def is_running(self) -> bool:
        """
        Check if an Appium server answers on the configured endpoint.

        Tries the current /status path first, then the legacy /wd/hub/status.
        Never raises: timeouts and connection errors mean "not running".

        Returns:
            True if either status endpoint returned HTTP 200
        """
        for url in self.config.status_urls:
            try:
                response = requests.get(url, timeout=self.probe_timeout)
            except requests.RequestException as e:
                logger.debug(f"Health check {url} failed: {e}")
                continue
            if response.status_code == 200:
                return True
            logger.debug(f"Health check {url} returned HTTP {response.status_code}")
        return False

    def ensure_running(self) -> None:
        """
        Make sure an Appium server is reachable, starting one if needed.

        If a healthy server already answers (started by us or by someone else)
        this is a no-op, so calling it twice never spawns a second process.

        Raises:
            AppiumServerError: If the server can't be spawned, exits before it
                is ready, or never becomes healthy.
        """
        if self.state is ServerState.STARTING:
            raise AppiumServerError("Appium server start already in progress")

        if self.state is ServerState.RUNNING and self.process is not None and self.process.poll() is None:
            logger.debug(f"Appium already running (PID {self.process.pid})")
            return

        if self.is_running():
            logger.info(f"Appium server is already running on {self.config.host}:{self.config.port}")
            if self.process is None:
                self.state = ServerState.RUNNING
            return

        # A dead process we still hold a handle to is of no use
        if self.process is not None:
            self.stop()

        self._start()

    def _start(self) -> None:
        cmd = self._build_command()
        logger.info(f"Starting Appium server on {self.config.host}:{self.config.port}...")
        logger.debug(f"Command: {' '.join(cmd)}")

        self.state = ServerState.STARTING
        self._ready.clear()

        popen_kwargs = dict(
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=self._get_env(),
            text=True,
            encoding='utf-8',
            errors='replace',
            bufsize=1,
        )
        if sys.platform == 'win32':
            # Windows: use CREATE_NEW_PROCESS_GROUP for clean shutdown
            popen_kwargs['creationflags'] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            # Unix: use start_new_session for process group isolation
            popen_kwargs['start_new_session'] = True

        try:
            self.process = subprocess.Popen(cmd, **popen_kwargs)
        except FileNotFoundError as e:
            self.state = ServerState.STOPPED
            raise AppiumServerError(
                f"'{cmd[0]}' command not found. Install with: npm install -g appium"
            ) from e
        except OSError as e:
            self.state = ServerState.STOPPED
            raise AppiumServerError(f"Failed to start Appium: {e}") from e
        except BaseException:
            self.state = ServerState.STOPPED
            raise

        logger.info(f"Appium started with PID {self.process.pid}")

        # Any failure from here on, Ctrl+C included, must not leave us STARTING
        try:
            self._reader = threading.Thread(
                target=self._drain_output,
                args=(self.process,),
                name=f"appium-{self.config.port}-stdout",
                daemon=True,
            )
            self._reader.start()
            self._wait_until_ready()
        except BaseException:
            self.stop()
            raise

        self.state = ServerState.RUNNING
        logger.info(f"Appium server started successfully on {self.config.host}:{self.config.port}")

    def _drain_output(self, process: subprocess.Popen) -> None:
        """Read Appium stdout until EOF, flagging the ready line."""
        for line in process.stdout:
            line = line.rstrip()
            if self.config.show_logs and line:
                logger.info(f"[Appium] {line}")
            if Config.APPIUM_READY_MARKER in line:
                self._ready.set()

    def _wait_until_ready(self) -> None:
        deadline = self._clock() + self.ready_timeout
        while self._clock() < deadline:
            if self._ready.wait(timeout=0.1):
                return
            code = self.process.poll()
            if code is not None:
                # The ready line may have been the last thing it printed
                if self._ready.is_set():
                    return
                raise AppiumServerError(
                    f"Appium server process exited with code {code} before starting"
                )

        if self._ready.is_set():
            return

        logger.info("Checking if Appium server is running...")
        if self.process.poll() is None and self.is_running():
            return
        raise AppiumServerError(
            f"Appium server did not start properly within {self.ready_timeout}s"
        )

    def stop(self, timeout: float = Config.APPIUM_STOP_TIMEOUT_S) -> None:
        """
        Stop the Appium server gracefully.

        Only a process this manager spawned is stopped; a server that was
        already running when we got here is left alone.

        Args:
            timeout: Maximum time to wait for graceful shutdown before force kill
        """
        if self.process is None:
            logger.debug("No Appium server to stop")
            self.state = ServerState.STOPPED
            return

        process = self.process
        logger.info(f"Stopping Appium server (PID {process.pid})...")

        try:
            if process.poll() is None:
                if sys.platform == 'win32':
                    # Windows: send CTRL_BREAK_EVENT to process group
                    process.send_signal(signal.CTRL_BREAK_EVENT)
                else:
                    process.terminate()

                try:
                    process.wait(timeout=timeout)
                    logger.info("Appium server stopped")
                except subprocess.TimeoutExpired:
                    logger.warning("Appium didn't stop gracefully, force killing")
                    process.kill()
                    process.wait(timeout=5)
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"Error stopping Appium server: {e}")
        finally:
            self.process = None
            self.state = ServerState.STOPPED
            self._ready.clear()


_server_manager: Optional[AppiumServerManager] = None


def get_server_manager(config: ServerConfig = None) -> AppiumServerManager:
    """
    Get the process-wide Appium server manager.

    The first call creates it. A later call with a different config replaces
    it, but only while the current one doesn't own a running process.

    Raises:
        AppiumServerError: If a different config is requested while the
            current manager owns a running server.
    """
    global _server_manager
    if _server_manager is None:
        _server_manager = AppiumServerManager(config or ServerConfig())
    elif config is not None and config != _server_manager.config:
        if _server_manager.owns_process:
            raise AppiumServerError(
                f"Appium server already managed on {_server_manager.config.base_url}"
            )
        _server_manager = AppiumServerManager(config)
    return _server_manager
