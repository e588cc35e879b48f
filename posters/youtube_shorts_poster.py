"""YouTube Shorts poster - uploads a video with a two-option poll through Appium.

Flow for one publish() call:
    validate inputs -> ensure Appium server -> open session -> run upload
    script -> wait for completion -> resolve reference -> close session ->
    stop server (only if we started it)

Teardown runs on every exit path and never replaces the original error.
"""
import time
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

from appium_server_manager import AppiumServerManager, get_server_manager
from appium_session import AppiumSession
from completion_poller import CompletionPoller
from config import Config, ServerConfig, SessionCapabilities
from error_debugger import ErrorDebugger
from flow_logger import FlowLogger
from poll_spec import PollSpec
from publish_errors import (
    AppiumServerError,
    ElementNotFoundError,
    PublishError,
    PublishValidationError,
    SessionError,
    UploadTimeoutError,
)
from result_resolver import ResultResolver
from upload_state_machine import UploadStateMachine, validate_upload_inputs

from .base_poster import BasePoster, PostResult, UploadResult

logger = logging.getLogger(__name__)

PollInput = Union[PollSpec, Mapping[str, Any]]

# error class -> (category, retryable)
ERROR_CATEGORIES = {
    PublishValidationError: ('validation', False),
    AppiumServerError: ('infrastructure', True),
    SessionError: ('infrastructure', True),
    ElementNotFoundError: ('ui', True),
    # Submitted but unconfirmed - retrying could post twice
    UploadTimeoutError: ('timeout', False),
}


def categorize_error(error: Exception):
    """Map an exception to (error_category, retryable)."""
    for error_class, category in ERROR_CATEGORIES.items():
        if isinstance(error, error_class):
            return category
    return ('unknown', True)


class YouTubeShortsPoster(BasePoster):
    """Publishes a video to YouTube Shorts with a poll via the Android app."""

    def __init__(
        self,
        server_options: Optional[Dict[str, Any]] = None,
        capabilities: SessionCapabilities = None,
        server_manager: AppiumServerManager = None,
        driver_factory: Callable = None,
        locator_table: Dict[str, Any] = None,
        upload_timeout_s: float = Config.UPLOAD_TIMEOUT_S,
        poll_interval_s: float = Config.UPLOAD_POLL_INTERVAL_S,
        probe_timeout_s: float = Config.ELEMENT_PROBE_TIMEOUT_S,
        keep_server_running: bool = False,
        flow_log_dir: Optional[str] = Config.FLOW_LOG_DIR,
        error_log_dir: Optional[str] = Config.ERROR_LOG_DIR,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            server_options: Overrides for host, port, show_logs, base_path.
            capabilities: Device/app capabilities (default from Config).
            server_manager: Appium server manager (default: process-wide one).
            driver_factory: Passed to AppiumSession (tests inject a fake driver).
            locator_table: Locator table (default: built-in for current version).
            upload_timeout_s: How long to wait for upload confirmation.
            poll_interval_s: Interval between completion probes.
            probe_timeout_s: Probe window for one element lookup.
            keep_server_running: Leave a server we started running after publish.
            flow_log_dir: Directory for JSONL flow logs, None to disable.
            error_log_dir: Directory for failure captures, None to disable.
        """
        self.server_config = ServerConfig.from_options(server_options)
        self.capabilities = capabilities or SessionCapabilities.default()
        self.server_manager = server_manager or get_server_manager(self.server_config)
        self._driver_factory = driver_factory
        self.locator_table = locator_table
        self.upload_timeout_s = upload_timeout_s
        self.poll_interval_s = poll_interval_s
        self.probe_timeout_s = probe_timeout_s
        self.keep_server_running = keep_server_running
        self.flow_log_dir = flow_log_dir
        self.error_log_dir = error_log_dir
        self._sleep = sleep
        self._clock = clock

        self._session: Optional[AppiumSession] = None
        self.last_result: Optional[UploadResult] = None
        self.last_error_path: Optional[str] = None

    @property
    def platform(self) -> str:
        return "youtube_shorts"

    @property
    def session(self) -> Optional[AppiumSession]:
        return self._session

    @staticmethod
    def to_poll_spec(poll_options: PollInput) -> PollSpec:
        if isinstance(poll_options, PollSpec):
            return poll_options
        if poll_options is None:
            raise PublishValidationError('Poll options must be an array with at least 2 items')
        return PollSpec.from_mapping(poll_options)

    def _open(self) -> None:
        """Ensure server, then open a session. Raising counterpart of connect()."""
        self.server_manager.ensure_running()
        if self._session is None or not self._session.is_open:
            self._session = AppiumSession(
                self.server_config,
                probe_timeout_s=self.probe_timeout_s,
                driver_factory=self._driver_factory,
            )
            self._session.open(self.capabilities)

    def connect(self) -> bool:
        """Start (or reuse) the Appium server and open a session.

        Returns:
            True if connection successful, False otherwise.
        """
        try:
            self._open()
            return True
        except PublishError as e:
            logger.error(f"[YouTubeShortsPoster] Connect failed: {e}")
            return False

    def publish(self, video_path: str, caption: str, poll_options: PollInput) -> str:
        """Upload a Short with a poll and return its (best-effort) reference.

        Args:
            video_path: Local video file.
            caption: Caption for the Short.
            poll_options: PollSpec or {options, question?, duration_days?}.

        Returns:
            Reference URL of the uploaded Short (placeholder, see ResultResolver).

        Raises:
            PublishValidationError: Bad input; nothing was started.
            AppiumServerError, SessionError, ElementNotFoundError: The run failed.
            UploadTimeoutError: Submitted but never confirmed.
            Any other exception from the driver or device is re-raised as is,
            after the same failure logging and capture.
        """
        logger.info("Preparing to publish video to YouTube Shorts...")
        self.last_result = None
        self.last_error_path = None
        poll = self.to_poll_spec(poll_options)
        validate_upload_inputs(video_path, caption, poll)

        flow = FlowLogger("youtube_shorts", self.flow_log_dir) if self.flow_log_dir else None
        phase = "connect"

        try:
            self._open()

            phase = "upload"
            UploadStateMachine(
                self._session,
                locator_table=self.locator_table,
                flow_logger=flow,
                sleep=self._sleep,
                clock=self._clock,
            ).run(video_path, caption, poll)

            phase = "completion"
            table = self.locator_table or {}
            marker = CompletionPoller(
                self._session,
                success_markers=table.get('success_markers'),
                progress_markers=table.get('progress_markers'),
                strategy=table.get('marker_strategy'),
                timeout_s=self.upload_timeout_s,
                interval_s=self.poll_interval_s,
                sleep=self._sleep,
                clock=self._clock,
            ).wait_for_completion()
            if flow:
                flow.log_step("completion", "poll", elapsed_ms=0.0, result="ok", detail=marker)

            phase = "result"
            result = ResultResolver(
                self._session,
                button_labels=table.get('result_buttons'),
                strategy=table.get('result_button_strategy'),
                sleep=self._sleep,
            ).resolve()

            self.last_result = result
            if flow:
                flow.log_success(result.url)
            logger.info(f"Video successfully published to YouTube Shorts: {result.url}")
            return result.url

        except Exception as e:
            logger.error(f"Error publishing video to YouTube Shorts ({phase}): {e}")
            if flow:
                flow.log_failure(f"{phase}: {type(e).__name__}: {e}")
            self._capture_error(e, phase)
            raise

        finally:
            self.cleanup()
            if flow:
                flow.close()

    def _capture_error(self, error: Exception, phase: str) -> None:
        if not self.error_log_dir:
            return
        try:
            debugger = ErrorDebugger("youtube_shorts", self.error_log_dir)
            self.last_error_path = debugger.capture_error(
                error, session=self._session, phase=phase,
                context={'server': self.server_config.base_url},
            )
        except OSError as capture_error:
            logger.warning(f"Could not save error capture: {capture_error}")

    def post(self, video_path: str, caption: str, poll=None) -> PostResult:
        """BasePoster interface: publish() that reports failures instead of raising."""
        start = self._clock()
        try:
            url = self.publish(video_path, caption, poll)
            return PostResult(
                success=True,
                url=url,
                resolved_via=self.last_result.resolved_via if self.last_result else None,
                platform=self.platform,
                duration_seconds=self._clock() - start,
            )
        except Exception as e:
            category, retryable = categorize_error(e)
            return PostResult(
                success=False,
                error=f"{type(e).__name__}: {e}",
                error_type=type(e).__name__,
                error_category=category,
                retryable=retryable,
                platform=self.platform,
                duration_seconds=self._clock() - start,
                screenshot_path=self.last_error_path,
            )

    def cleanup(self):
        """Close the session, then stop the server if we own it.

        Never raises, so it can't hide the error that got us here.
        """
        if self._session is not None:
            self._session.close()
            self._session = None

        if self.keep_server_running:
            return
        try:
            if self.server_manager.owns_process:
                self.server_manager.stop()
        except Exception as e:
            logger.warning(f"[YouTubeShortsPoster] Cleanup warning: {e}")
