"""Shared pytest fixtures: a fake Appium driver and an instant clock."""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

import pytest
from selenium.common.exceptions import NoSuchElementException

from appium_session import AppiumSession
from config import ServerConfig, SessionCapabilities


class FakeElement:
    def __init__(self, driver: "FakeDriver", xpath: str) -> None:
        self.driver = driver
        self.xpath = xpath

    def click(self) -> None:
        self.driver.taps.append(self.xpath)

    def clear(self) -> None:
        self.driver.cleared.append(self.xpath)

    def send_keys(self, value: str) -> None:
        self.driver.typed.append((self.xpath, value))


class FakeDriver:
    """Stands in for appium.webdriver.Remote.

    Every XPath matches unless it contains one of the `absent` substrings.
    """

    def __init__(self, absent: Iterable[str] = ()) -> None:
        self.absent = set(absent)
        self.taps: List[str] = []
        self.cleared: List[str] = []
        self.typed: List[Tuple[str, str]] = []
        self.pushed: List[Tuple[str, Optional[str]]] = []
        self.swipes: List[tuple] = []
        self.activated: List[str] = []
        self.quit_count = 0
        self.page_source = "<hierarchy/>"

    def _visible(self, xpath: str) -> bool:
        return not any(text in xpath for text in self.absent)

    def find_element(self, by, value):
        if not self._visible(value):
            raise NoSuchElementException(f"no element for {value}")
        return FakeElement(self, value)

    def find_elements(self, by, value):
        return [FakeElement(self, value)] if self._visible(value) else []

    def push_file(self, destination_path, base64data=None):
        self.pushed.append((destination_path, base64data))

    def swipe(self, start_x, start_y, end_x, end_y, duration=0):
        self.swipes.append((start_x, start_y, end_x, end_y, duration))

    def activate_app(self, app_id):
        self.activated.append(app_id)

    def save_screenshot(self, filename):
        with open(filename, "wb") as f:
            f.write(b"\x89PNG")
        return True

    def quit(self):
        self.quit_count += 1


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture()
def fake_driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture()
def driver_factory(fake_driver: FakeDriver):
    """Driver factory recording the kwargs of every session it creates."""

    def factory(**kwargs):
        factory.calls.append(kwargs)
        return fake_driver

    factory.calls = []
    return factory


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def session(driver_factory) -> AppiumSession:
    """An open session on the fake driver with an instant probe window."""
    s = AppiumSession(ServerConfig(), probe_timeout_s=0, driver_factory=driver_factory)
    s.open(SessionCapabilities.default())
    return s


@pytest.fixture()
def video_file(tmp_path) -> str:
    path = tmp_path / "final_movie_1700000000000.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return str(path)
