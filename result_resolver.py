"""
Result Resolver - best-effort reference to the published Short.

The YouTube app doesn't show the new Short's URL anywhere we can read, so
the reference returned here is a placeholder built from a fixed scheme and
a millisecond timestamp. When one of the post-upload buttons (View, Watch,
Go to channel) is present it is tapped so the device ends up on the Short.
The real Short can be found on the channel.
"""
import time
import logging
from typing import Callable, Sequence

from appium_session import AppiumSession
from config import Config
from posters.base_poster import ResolvedVia, UploadResult
from publish_errors import ElementNotFoundError, SessionError
from upload_steps import LocatorStrategy, get_locator_table

logger = logging.getLogger(__name__)


class ResultResolver:

    def __init__(
        self,
        session: AppiumSession,
        button_labels: Sequence[str] = None,
        strategy: LocatorStrategy = None,
        stabilize_s: float = 2.0,
        settle_s: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
        now_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ):
        self.session = session
        table = get_locator_table()
        self.button_labels = list(button_labels or table['result_buttons'])
        self.strategy = strategy or table['result_button_strategy']
        self.stabilize_s = stabilize_s
        self.settle_s = settle_s
        self._sleep = sleep
        self._now_ms = now_ms

    def _tap_result_button(self) -> bool:
        for label in self.button_labels:
            try:
                if not self.session.exists(self.strategy, label):
                    continue
                logger.info(f'Found "{label}" button, clicking...')
                self.session.tap(self.session.find(self.strategy, label))
                self._sleep(self.settle_s)
                return True
            except (SessionError, ElementNotFoundError) as e:
                logger.info(f'Button "{label}" not usable ({e}), trying next option...')
        return False

    def resolve(self) -> UploadResult:
        """Navigate to the Short if possible and return its placeholder reference."""
        logger.info("Looking for View button...")
        self._sleep(self.stabilize_s)

        if self._tap_result_button():
            prefix = Config.PLACEHOLDER_PREFIX_VIEWED
        else:
            logger.info("No view button found, using timestamp-based URL")
            prefix = Config.PLACEHOLDER_PREFIX_UNKNOWN

        url = f"{Config.SHORTS_URL_BASE}/{prefix}_{self._now_ms()}"
        logger.info(f"Generated Short URL: {url} (placeholder; the actual Short is on your channel)")
        return UploadResult(url=url, resolved_via=ResolvedVia.PLACEHOLDER)
