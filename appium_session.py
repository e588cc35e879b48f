"""
Appium Session - owns the Appium driver for one publishing run.

This module provides a clean interface for interacting with Android
UI elements through Appium WebDriver:
- open / close of exactly one remote session (close is idempotent)
- element lookup by text, text fragment, accessibility description or input hint
- tap, set text, push file, scroll, activate app

Driver and transport failures are raised as SessionError, missing elements as
ElementNotFoundError. Nothing here retries; waiting between steps is the
caller's job.
"""
import base64
import logging
from typing import Callable, List, Optional, Tuple

import urllib3
from appium import webdriver
from appium.webdriver.common.appiumby import AppiumBy
from selenium.common.exceptions import (
    NoSuchElementException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from config import Config, ServerConfig, SessionCapabilities
from publish_errors import ElementNotFoundError, SessionError
from upload_steps import LocatorStrategy

logger = logging.getLogger(__name__)

Point = Tuple[int, int]

# Transport failures (connection reset, server gone) reach us unwrapped by selenium
DRIVER_ERRORS = (WebDriverException, urllib3.exceptions.HTTPError, OSError)


def _describe(error: Exception) -> str:
    return str(getattr(error, "msg", None) or error)


def xpath_literal(value: str) -> str:
    """Quote a string for use inside an XPath expression."""
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    parts = value.split('"')
    return "concat(" + ', \'"\', '.join(f'"{p}"' for p in parts) + ")"


def build_xpath(strategy: LocatorStrategy, value: str) -> str:
    """Translate a locator into an XPath over the UiAutomator2 page source."""
    literal = xpath_literal(value)
    if strategy is LocatorStrategy.TEXT:
        return f"//*[@text={literal}]"
    if strategy is LocatorStrategy.TEXT_CONTAINS:
        return f"//*[contains(@text, {literal})]"
    if strategy is LocatorStrategy.CONTENT_DESC:
        return f"//*[@content-desc={literal}]"
    if strategy is LocatorStrategy.INPUT_HINT:
        # Empty EditTexts report their hint as text on older UiAutomator2 builds
        return f"//android.widget.EditText[@hint={literal} or @text={literal}]"
    if strategy is LocatorStrategy.BUTTON_TEXT:
        return f"//android.widget.Button[@text={literal}]"
    if strategy is LocatorStrategy.LABEL_TEXT_CONTAINS:
        return f"//android.widget.TextView[contains(@text, {literal})]"
    raise ValueError(f"Unsupported locator strategy: {strategy}")


class AppiumSession:
    """One Appium session against a running server.

    Usage:
        with AppiumSession(server_config) as session:
            session.open(SessionCapabilities.default())
            button = session.find(LocatorStrategy.TEXT, "Upload")
            session.tap(button)
    """

    def __init__(
        self,
        server: ServerConfig = None,
        probe_timeout_s: float = Config.ELEMENT_PROBE_TIMEOUT_S,
        driver_factory: Callable[..., webdriver.Remote] = None,
    ):
        """
        Args:
            server: Appium server endpoint.
            probe_timeout_s: How long a single find() looks before giving up.
            driver_factory: Callable(command_executor=..., options=...) returning
                a driver. Defaults to appium.webdriver.Remote.
        """
        self.server = server or ServerConfig()
        self.probe_timeout_s = probe_timeout_s
        self._driver_factory = driver_factory or webdriver.Remote
        self._driver: Optional[webdriver.Remote] = None
        self.capabilities: Optional[SessionCapabilities] = None

    @property
    def driver(self) -> webdriver.Remote:
        """Get the underlying Appium driver."""
        if self._driver is None:
            raise SessionError("Appium session not open - call open() first")
        return self._driver

    @property
    def is_open(self) -> bool:
        return self._driver is not None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def open(self, capabilities: SessionCapabilities) -> None:
        """Create the remote session.

        Raises:
            SessionError: If a session is already open or capability
                negotiation fails.
        """
        if self._driver is not None:
            raise SessionError("Appium session already open")

        logger.info(f"Initializing Appium session on {self.server.base_url} "
                    f"({capabilities.device_name}, {capabilities.app_package})")
        try:
            self._driver = self._driver_factory(
                command_executor=self.server.base_url,
                options=capabilities.to_options(),
            )
        except WebDriverException as e:
            raise SessionError(f"Failed to create Appium session: {_describe(e)}") from e
        except Exception as e:
            # urllib3/connection errors surface as plain exceptions here
            raise SessionError(f"Failed to create Appium session: {e}") from e

        self.capabilities = capabilities
        logger.info("Appium driver initialized successfully")

    def close(self) -> None:
        """Delete the remote session. Safe to call repeatedly or when never opened."""
        if self._driver is None:
            return
        driver, self._driver = self._driver, None
        try:
            driver.quit()
            logger.info("Appium driver session closed")
        except Exception as e:
            logger.warning(f"Error closing Appium session: {e}")

    # ---------------------------------------------------------------- lookup

    def find(self, strategy: LocatorStrategy, value: str, step_id: str = None):
        """Find one element within the probe window.

        Raises:
            ElementNotFoundError: If it doesn't show up in time.
            SessionError: On driver communication failure.
        """
        locator = (AppiumBy.XPATH, build_xpath(strategy, value))
        try:
            return WebDriverWait(
                self.driver, self.probe_timeout_s, poll_frequency=0.25,
                ignored_exceptions=(NoSuchElementException,),
            ).until(EC.presence_of_element_located(locator))
        except TimeoutException:
            raise ElementNotFoundError(strategy.value, value, step_id) from None
        except DRIVER_ERRORS as e:
            raise SessionError(f"Lookup {strategy.value}={value!r} failed: {_describe(e)}") from e

    def find_all(self, strategy: LocatorStrategy, value: str) -> List:
        """Immediate lookup of all matching elements (may be empty)."""
        try:
            return self.driver.find_elements(AppiumBy.XPATH, build_xpath(strategy, value))
        except DRIVER_ERRORS as e:
            raise SessionError(f"Lookup {strategy.value}={value!r} failed: {_describe(e)}") from e

    def exists(self, strategy: LocatorStrategy, value: str) -> bool:
        """Check whether at least one matching element is on screen right now."""
        return len(self.find_all(strategy, value)) > 0

    def wait_until_present(self, strategy: LocatorStrategy, value: str, timeout_s: float) -> bool:
        """Wait up to timeout_s for an element to appear.

        Returns:
            True if it appeared, False on timeout.
        """
        locator = (AppiumBy.XPATH, build_xpath(strategy, value))
        try:
            WebDriverWait(
                self.driver, timeout_s, poll_frequency=0.5,
                ignored_exceptions=(NoSuchElementException,),
            ).until(EC.presence_of_element_located(locator))
            return True
        except TimeoutException:
            return False
        except DRIVER_ERRORS as e:
            raise SessionError(f"Wait for {strategy.value}={value!r} failed: {_describe(e)}") from e

    # ----------------------------------------------------------- interaction

    def tap(self, element) -> None:
        try:
            element.click()
        except DRIVER_ERRORS as e:
            raise SessionError(f"Tap failed: {_describe(e)}") from e

    def set_text(self, element, value: str) -> None:
        """Replace the element's text with value (supports Unicode/emojis)."""
        try:
            element.clear()
            element.send_keys(value)
        except DRIVER_ERRORS as e:
            raise SessionError(f"Typing failed: {_describe(e)}") from e

    def push_file(self, device_path: str, data: bytes) -> None:
        """Write bytes to a file on the device."""
        encoded = base64.b64encode(data).decode('ascii')
        logger.debug(f"Pushing {len(data)} bytes to {device_path}")
        try:
            self.driver.push_file(device_path, base64data=encoded)
        except DRIVER_ERRORS as e:
            raise SessionError(f"Push to {device_path} failed: {_describe(e)}") from e

    def scroll(self, from_point: Point, to_point: Point,
               duration_ms: int = Config.SWIPE_DURATION_MS) -> None:
        """Swipe from one point to another."""
        try:
            self.driver.swipe(from_point[0], from_point[1], to_point[0], to_point[1], duration_ms)
        except DRIVER_ERRORS as e:
            raise SessionError(f"Scroll failed: {_describe(e)}") from e

    def activate_app(self, app_package: str) -> None:
        """Bring the app to the foreground, launching it if needed."""
        try:
            self.driver.activate_app(app_package)
        except DRIVER_ERRORS as e:
            raise SessionError(f"Activating {app_package} failed: {_describe(e)}") from e

    def save_screenshot(self, filepath: str) -> bool:
        """Save a screenshot to file.

        Returns:
            True if screenshot was saved.
        """
        try:
            return bool(self.driver.save_screenshot(filepath))
        except DRIVER_ERRORS + (SessionError,) as e:
            logger.warning(f"Failed to save screenshot: {e}")
            return False

    def page_source(self) -> str:
        """Current UI hierarchy XML, empty string if it can't be read."""
        try:
            return self.driver.page_source or ""
        except DRIVER_ERRORS + (SessionError,) as e:
            logger.warning(f"Failed to read page source: {e}")
            return ""
