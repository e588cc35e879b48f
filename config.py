"""
Centralized Configuration Module.

This is the SINGLE SOURCE OF TRUTH for Appium, device and upload settings.
All other modules should import from here instead of defining their own values.

Any value can be overridden from the environment (or a .env file next to the
working directory), e.g.:

    APPIUM_HOST=127.0.0.1
    APPIUM_PORT=4725
    ANDROID_DEVICE_NAME=emulator-5554
    YOUTUBE_UPLOAD_TIMEOUT_S=900

Usage:
    from config import Config, ServerConfig, SessionCapabilities

    server = ServerConfig.from_options({'port': 4725})
    caps = SessionCapabilities.default()
"""

import os
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple

from appium.options.android import UiAutomator2Options
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


@dataclass(frozen=True)
class Config:
    """
    Centralized configuration constants.

    These values should NEVER be redefined in other files.
    If you need to change a value, change it HERE (or in .env).
    """

    # ==================== APPIUM SERVER ====================

    APPIUM_HOST: str = os.getenv('APPIUM_HOST', 'localhost')
    APPIUM_PORT: int = _env_int('APPIUM_PORT', 4723)

    # Appium 1.x served everything under /wd/hub, 2.x serves from /
    APPIUM_BASE_PATH: str = os.getenv('APPIUM_BASE_PATH', '')

    # Forward Appium stdout to our logger
    APPIUM_SHOW_LOGS: bool = _env_bool('APPIUM_SHOW_LOGS', False)

    # Executable used to spawn the server ('appium' on PATH by default)
    APPIUM_BINARY: Optional[str] = os.getenv('APPIUM_BINARY')

    # Line Appium prints on stdout once the REST interface is listening
    APPIUM_READY_MARKER: str = 'Appium REST http interface listener started'

    # Seconds to wait for the ready line before re-probing /status
    APPIUM_READY_GRACE_S: float = 5.0

    # Seconds to wait for graceful shutdown before SIGKILL
    APPIUM_STOP_TIMEOUT_S: float = 5.0

    # Health probe HTTP timeout
    APPIUM_PROBE_TIMEOUT_S: float = 1.0

    # Android SDK (only exported to the Appium process when set)
    ANDROID_SDK_PATH: Optional[str] = os.getenv('ANDROID_HOME') or os.getenv('ANDROID_SDK_ROOT')

    # ==================== DEVICE / APP ====================

    PLATFORM_NAME: str = 'Android'
    DEVICE_NAME: str = os.getenv('ANDROID_DEVICE_NAME', 'YouTube_Emulator')
    PLATFORM_VERSION: str = os.getenv('ANDROID_PLATFORM_VERSION', '13.0')  # Android 13 (API 33)
    DEVICE_UDID: Optional[str] = os.getenv('ANDROID_UDID')
    DEVICE_AVD: Optional[str] = os.getenv('ANDROID_AVD', 'YouTube_Emulator')
    AUTOMATION_NAME: str = 'UiAutomator2'

    YOUTUBE_PACKAGE: str = 'com.google.android.youtube'
    YOUTUBE_ACTIVITY: str = 'com.google.android.youtube.HomeActivity'

    # Keep app state between sessions (keeps the account logged in)
    NO_RESET: bool = True
    FULL_RESET: bool = False
    AUTO_GRANT_PERMISSIONS: bool = True

    # Idle time before Appium drops the session
    SESSION_TIMEOUT_MS: int = 60000

    # Element probe window for a single lookup
    ELEMENT_PROBE_TIMEOUT_S: float = 5.0

    # Where pushed videos land on the device (the file browser's "Downloads")
    DEVICE_UPLOAD_DIR: str = '/sdcard/Download'

    # ==================== YOUTUBE UPLOAD ====================

    # Maximum wait for the upload to be confirmed
    UPLOAD_TIMEOUT_S: float = float(_env_int('YOUTUBE_UPLOAD_TIMEOUT_S', 10 * 60))

    # Interval between completion probes
    UPLOAD_POLL_INTERVAL_S: float = 5.0

    # Poll duration used when the requested one is not supported (1, 3 or 7)
    DEFAULT_POLL_DURATION_DAYS: int = _env_int('YOUTUBE_POLL_DURATION_DAYS', 7)

    # Question used when the story doesn't provide one
    DEFAULT_POLL_QUESTION: str = 'What happens next?'

    # Placeholder reference scheme for published Shorts
    SHORTS_URL_BASE: str = 'https://youtube.com/shorts'
    PLACEHOLDER_PREFIX_VIEWED: str = 'choicestream'
    PLACEHOLDER_PREFIX_UNKNOWN: str = 'unknown'

    # ==================== SCREEN COORDINATES ====================
    # Used for the scroll gestures that reveal Poll / Upload

    SCROLL_FROM: Tuple[int, int] = (500, 1500)
    SCROLL_TO: Tuple[int, int] = (500, 500)
    SWIPE_DURATION_MS: int = 300

    # ==================== FILES ====================

    FLOW_LOG_DIR: str = 'flow_logs'
    ERROR_LOG_DIR: str = 'error_logs'
    LATEST_POLL_FILE: str = os.path.join('poll_results', 'latest_prompt.json')


@dataclass(frozen=True)
class ServerConfig:
    """One logical Appium server endpoint. Immutable per run."""
    host: str = Config.APPIUM_HOST
    port: int = Config.APPIUM_PORT
    show_logs: bool = Config.APPIUM_SHOW_LOGS
    base_path: str = Config.APPIUM_BASE_PATH

    @classmethod
    def from_options(cls, options: Optional[Dict[str, Any]] = None) -> 'ServerConfig':
        """Merge caller options over the configured defaults.

        Unknown keys and None values are ignored.

        Args:
            options: Dict with any of host, port, show_logs, base_path.

        Returns:
            ServerConfig instance
        """
        merged = asdict(cls())
        for key, value in (options or {}).items():
            if key in merged and value is not None:
                merged[key] = value
        merged['port'] = int(merged['port'])
        merged['base_path'] = merged['base_path'].rstrip('/')
        if merged['base_path'] and not merged['base_path'].startswith('/'):
            merged['base_path'] = '/' + merged['base_path']
        return cls(**merged)

    @property
    def base_url(self) -> str:
        """Get the Appium server URL used for sessions."""
        return f"http://{self.host}:{self.port}{self.base_path}"

    @property
    def status_urls(self) -> Tuple[str, str]:
        """Status endpoints to probe: current path first, legacy /wd/hub second."""
        root = f"http://{self.host}:{self.port}"
        return (f"{root}/status", f"{root}/wd/hub/status")


@dataclass(frozen=True)
class SessionCapabilities:
    """Declares the target device/app for one Appium session."""
    platform_name: str = Config.PLATFORM_NAME
    device_name: str = Config.DEVICE_NAME
    platform_version: str = Config.PLATFORM_VERSION
    app_package: str = Config.YOUTUBE_PACKAGE
    app_activity: str = Config.YOUTUBE_ACTIVITY
    automation_name: str = Config.AUTOMATION_NAME
    no_reset: bool = Config.NO_RESET
    full_reset: bool = Config.FULL_RESET
    auto_grant_permissions: bool = Config.AUTO_GRANT_PERMISSIONS
    session_timeout_ms: int = Config.SESSION_TIMEOUT_MS
    avd: Optional[str] = Config.DEVICE_AVD
    udid: Optional[str] = Config.DEVICE_UDID

    @classmethod
    def default(cls) -> 'SessionCapabilities':
        return cls()

    def as_dict(self) -> Dict[str, Any]:
        """W3C capability payload sent to Appium."""
        caps = {
            'platformName': self.platform_name,
            'appium:deviceName': self.device_name,
            'appium:platformVersion': self.platform_version,
            'appium:appPackage': self.app_package,
            'appium:appActivity': self.app_activity,
            'appium:automationName': self.automation_name,
            # Appium takes this one in seconds
            'appium:newCommandTimeout': max(1, self.session_timeout_ms // 1000),
            'appium:autoGrantPermissions': self.auto_grant_permissions,
            'appium:noReset': self.no_reset,
            'appium:fullReset': self.full_reset,
        }
        if self.avd:
            caps['appium:avd'] = self.avd
        if self.udid:
            caps['appium:udid'] = self.udid
        return caps

    def to_options(self) -> UiAutomator2Options:
        """Build UiAutomator2Options for webdriver.Remote."""
        options = UiAutomator2Options()
        options.platform_name = self.platform_name
        options.automation_name = self.automation_name
        options.device_name = self.device_name
        options.platform_version = self.platform_version
        options.app_package = self.app_package
        options.app_activity = self.app_activity
        options.no_reset = self.no_reset
        options.full_reset = self.full_reset
        options.auto_grant_permissions = self.auto_grant_permissions
        options.new_command_timeout = max(1, self.session_timeout_ms // 1000)
        if self.avd:
            options.avd = self.avd
        if self.udid:
            options.udid = self.udid
        return options
