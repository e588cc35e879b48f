"""
Upload State Machine - runs the scripted YouTube Shorts upload.

The script is a fixed sequence of UploadStep (see upload_steps.py). States
are step indices; the terminal state is SUBMITTED, reached after the Upload
button has been tapped. Each transition:

    1. skip the step if its `when` key is empty (e.g. no poll question)
    2. check preconditions (the local video exists before a push)
    3. locate the element
    4. perform the action
    5. settle: wait on the step's condition if it has one, else a fixed delay

Any failure aborts the remaining script and propagates unchanged. There is
no per-step retry.
"""
import os
import time
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from appium_session import AppiumSession
from config import Config
from flow_logger import FlowLogger
from poll_spec import PollSpec
from publish_errors import PublishValidationError
from upload_steps import StepAction, UploadStep, build_upload_script, duration_label

logger = logging.getLogger(__name__)


class UploadState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUBMITTED = "submitted"
    FAILED = "failed"


def validate_upload_inputs(video_path: str, caption: str, poll: PollSpec) -> None:
    """Checks done before any UI interaction.

    Raises:
        PublishValidationError: For a missing video file, empty caption or bad poll.
    """
    if not video_path or not os.path.isfile(video_path):
        raise PublishValidationError(f"Video file not found: {video_path}")
    if not isinstance(caption, str) or not caption.strip():
        raise PublishValidationError("Caption must be a non-empty string")
    if not isinstance(poll, PollSpec) or len(poll.options) != 2:
        raise PublishValidationError("Poll must have exactly 2 options")


class UploadStateMachine:
    """Executes the upload script against an open AppiumSession."""

    def __init__(
        self,
        session: AppiumSession,
        script: Sequence[UploadStep] = None,
        locator_table: Dict[str, Any] = None,
        device_upload_dir: str = Config.DEVICE_UPLOAD_DIR,
        flow_logger: Optional[FlowLogger] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session = session
        self.locator_table = locator_table
        self.script = tuple(script) if script is not None else build_upload_script(locator_table)
        self.device_upload_dir = device_upload_dir.rstrip('/')
        self.flow_logger = flow_logger
        self._sleep = sleep
        self._clock = clock

        self.state = UploadState.PENDING
        self.current_step = 0
        self.failed_step: Optional[str] = None

    def build_context(self, video_path: str, caption: str, poll: PollSpec) -> Dict[str, Any]:
        """Runtime values substituted into step templates."""
        filename = os.path.basename(video_path)
        app_package = self.session.capabilities.app_package if self.session.capabilities \
            else Config.YOUTUBE_PACKAGE
        return {
            'video_path': video_path,
            'filename': filename,
            'device_video_path': f"{self.device_upload_dir}/{filename}",
            'caption': caption,
            'question': poll.question or '',
            'option_1': poll.options[0],
            'option_2': poll.options[1],
            'duration_days': poll.duration_days,
            'duration_label': duration_label(poll.duration_days, self.locator_table),
            'app_package': app_package,
        }

    def run(self, video_path: str, caption: str, poll: PollSpec) -> None:
        """Run the whole script; returns once the upload has been submitted.

        Raises:
            PublishValidationError: Bad inputs (nothing is touched on the device).
            ElementNotFoundError, SessionError: A step failed; the script stops there.
                Unexpected errors stop it the same way and propagate unchanged.
        """
        validate_upload_inputs(video_path, caption, poll)
        context = self.build_context(video_path, caption, poll)

        self.state = UploadState.RUNNING
        self.current_step = 0
        self.failed_step = None
        logger.info(f"Uploading video to YouTube Shorts: {video_path}")

        for index, step in enumerate(self.script):
            self.current_step = index
            try:
                self._run_step(step, context)
            except Exception as e:
                self.state = UploadState.FAILED
                self.failed_step = step.id
                logger.error(f"Step {index + 1}/{len(self.script)} '{step.id}' failed: {e}")
                if self.flow_logger:
                    self.flow_logger.log_error(type(e).__name__, str(e), step.id)
                raise

        self.current_step = len(self.script)
        self.state = UploadState.SUBMITTED
        logger.info("Upload submitted")

    def _run_step(self, step: UploadStep, context: Dict[str, Any]) -> None:
        if step.when and not context.get(step.when):
            logger.debug(f"Skipping '{step.id}' (no {step.when})")
            self._log_step(step, None, 0.0, "skipped")
            return

        value = step.value.format_map(context) if step.value else ""
        locator = {'strategy': step.strategy.value, 'value': value} if step.strategy else None
        logger.info(f"[{self.current_step + 1}/{len(self.script)}] {step.id} ({step.action.value})")
        started = self._clock()

        if step.action is StepAction.ACTIVATE_APP:
            self.session.activate_app(value)

        elif step.action is StepAction.PUSH_FILE:
            video_path = context['video_path']
            if not os.path.isfile(video_path):
                raise PublishValidationError(f"Video file not found: {video_path}")
            with open(video_path, 'rb') as f:
                self.session.push_file(value, f.read())

        elif step.action is StepAction.SCROLL:
            self.session.scroll(Config.SCROLL_FROM, Config.SCROLL_TO)

        elif step.action is StepAction.WAIT:
            if step.strategy and step.wait_timeout_s > 0:
                appeared = self.session.wait_until_present(step.strategy, value, step.wait_timeout_s)
                if not appeared:
                    logger.warning(f"'{value}' not visible after {step.wait_timeout_s:.0f}s, continuing")
                self._log_step(step, locator, (self._clock() - started) * 1000,
                               "ok" if appeared else "timeout")
                return
            # No condition to wait on, the fixed settle delay below is the wait

        elif step.action is StepAction.TAP:
            element = self.session.find(step.strategy, value, step.id)
            self.session.tap(element)

        elif step.action is StepAction.SET_TEXT:
            element = self.session.find(step.strategy, value, step.id)
            self.session.set_text(element, step.text.format_map(context))

        else:
            raise ValueError(f"Unsupported step action: {step.action}")

        self._log_step(step, locator, (self._clock() - started) * 1000, "ok")
        if step.settle_delay_ms:
            self._sleep(step.settle_delay_ms / 1000.0)

    def _log_step(self, step: UploadStep, locator, elapsed_ms: float, result: str) -> None:
        if self.flow_logger:
            self.flow_logger.log_step(step.id, step.action.value, locator, elapsed_ms, result)
