"""
Completion Poller - waits for YouTube to confirm the Short after submission.

Probes the screen at a fixed interval for any of the known success texts
(all phrasings count the same). Progress texts are only logged. A check that
errors is not fatal: the screen is mid-transition more often than not, and
missing markers are the normal case until the upload finishes.
"""
import time
import logging
from typing import Callable, Optional, Sequence

from appium_session import AppiumSession
from config import Config
from publish_errors import UploadTimeoutError
from upload_steps import LocatorStrategy, get_locator_table

logger = logging.getLogger(__name__)


class CompletionPoller:
    """Polls the UI until an upload success marker shows up or time runs out."""

    def __init__(
        self,
        session: AppiumSession,
        success_markers: Sequence[str] = None,
        progress_markers: Sequence[str] = None,
        strategy: LocatorStrategy = None,
        timeout_s: float = Config.UPLOAD_TIMEOUT_S,
        interval_s: float = Config.UPLOAD_POLL_INTERVAL_S,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        table = get_locator_table()
        self.session = session
        self.success_markers = list(success_markers or table['success_markers'])
        self.progress_markers = list(progress_markers or table['progress_markers'])
        self.strategy = strategy or table['marker_strategy']
        self.timeout_s = timeout_s
        self.interval_s = interval_s
        self._sleep = sleep
        self._clock = clock
        self.probes = 0

    def _find_marker(self, markers: Sequence[str]) -> Optional[str]:
        for text in markers:
            if self.session.exists(self.strategy, text):
                return text
        return None

    def wait_for_completion(self) -> str:
        """Block until a success marker is seen.

        Returns:
            The success marker text that was found.

        Raises:
            UploadTimeoutError: If none is seen within timeout_s.
        """
        logger.info(f"Waiting for YouTube Shorts upload to complete (timeout {self.timeout_s:.0f}s)...")
        start = self._clock()
        last_progress = None

        while True:
            self.probes += 1
            try:
                found = self._find_marker(self.success_markers)
                if found:
                    logger.info(f"Upload completed successfully! Found message: {found}")
                    return found

                progress = self._find_marker(self.progress_markers)
                if progress:
                    if progress != last_progress:
                        logger.info(f"Upload in progress... ({progress})")
                    last_progress = progress
                else:
                    logger.debug("Waiting for upload status indication...")
            except Exception as e:
                # Dropped connections included; only the deadline ends the wait
                logger.debug(f"Waiting for upload to complete... (check failed: {type(e).__name__}: {e})")

            remaining = self.timeout_s - (self._clock() - start)
            if remaining <= 0:
                break
            self._sleep(min(self.interval_s, remaining))

        logger.error(f"Upload not confirmed after {self.timeout_s:.0f}s")
        raise UploadTimeoutError(self.timeout_s)
