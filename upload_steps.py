"""
Upload Steps - Version-Aware Locator Table and Upload Script

The YouTube app's on-screen wording changes between releases and the flow
breaks silently when it does. Instead of inline strings, every control the
upload script touches is described here, keyed by step id, per YouTube major
version. A JSON file can override any entry without touching control flow.

This module provides:
- LocatorStrategy / StepAction enums
- UploadStep: one scripted step (what to find, what to do, how long to settle)
- LOCATOR_VERSIONS: step id -> (strategy, value) per YouTube major version
- Marker lists for the completion poller and result resolver
- build_upload_script(): the fixed, ordered step sequence

Usage:
    from upload_steps import get_locator_table, build_upload_script

    table = get_locator_table("19")
    script = build_upload_script(table)
"""

import copy
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from config import Config

logger = logging.getLogger(__name__)


class LocatorStrategy(Enum):
    """How a locator value is matched against the live UI tree."""
    TEXT = "by-text"
    TEXT_CONTAINS = "by-text-contains"
    CONTENT_DESC = "by-content-description"
    INPUT_HINT = "by-input-hint"
    # Same matches restricted to one widget class
    BUTTON_TEXT = "by-button-text"
    LABEL_TEXT_CONTAINS = "by-label-text-contains"


class StepAction(Enum):
    """What a step does once its element is located."""
    ACTIVATE_APP = "activate-app"
    TAP = "tap"
    SET_TEXT = "set-text"
    PUSH_FILE = "push-file"
    SCROLL = "scroll-gesture"
    WAIT = "wait"


@dataclass(frozen=True)
class UploadStep:
    """One step of the upload script.

    Attributes:
        id: Step identifier (also the key into the locator table).
        action: Action performed by the step.
        strategy: Locator strategy, None for steps that don't locate anything.
        value: Locator value template (e.g. "{filename}").
        text: Text template typed by SET_TEXT steps.
        settle_delay_ms: Fixed pause after the step for UI transitions.
        wait_timeout_s: For WAIT steps with a locator, the bound on waiting
            for that element to appear.
        when: Context key that must be truthy for the step to run.
    """
    id: str
    action: StepAction
    strategy: Optional[LocatorStrategy] = None
    value: str = ""
    text: str = ""
    settle_delay_ms: int = 1000
    wait_timeout_s: float = 0.0
    when: Optional[str] = None


# =============================================================================
# Version-Specific Locator Tables
# =============================================================================

# Keys are YouTube major version prefixes ("19" matches "19.09.37" etc.).
# Values are (strategy, value template) pairs keyed by step id, plus marker lists.
LOCATOR_VERSIONS: Dict[str, Dict[str, Any]] = {
    "19": {
        "open_create": (LocatorStrategy.CONTENT_DESC, "Create"),
        "create_short": (LocatorStrategy.TEXT, "Create a Short"),
        "add_media": (LocatorStrategy.TEXT, "Add"),
        "open_browser": (LocatorStrategy.TEXT, "Browse"),
        "open_downloads": (LocatorStrategy.TEXT, "Downloads"),
        "select_video": (LocatorStrategy.TEXT, "{filename}"),
        "await_processing": (LocatorStrategy.TEXT, "Next"),
        "advance": (LocatorStrategy.TEXT, "Next"),
        "set_caption": (LocatorStrategy.INPUT_HINT, "Caption your Short"),
        "open_poll": (LocatorStrategy.TEXT, "Poll"),
        "set_poll_question": (LocatorStrategy.INPUT_HINT, "Ask a question..."),
        "set_poll_option_1": (LocatorStrategy.INPUT_HINT, "Option 1"),
        "set_poll_option_2": (LocatorStrategy.INPUT_HINT, "Option 2"),
        "open_poll_duration": (LocatorStrategy.TEXT, "Poll duration"),
        "select_poll_duration": (LocatorStrategy.TEXT, "{duration_label}"),
        "confirm_poll": (LocatorStrategy.TEXT, "Done"),
        "submit": (LocatorStrategy.TEXT, "Upload"),

        # Completion / result screens
        "success_markers": [
            "Your Short is live",
            "Your Short was uploaded",
            "Short uploaded",
            "Upload complete",
        ],
        "progress_markers": ["Uploading", "Processing", "Creating"],
        "result_buttons": ["View", "Watch", "Go to channel"],
        "marker_strategy": LocatorStrategy.LABEL_TEXT_CONTAINS,
        "result_button_strategy": LocatorStrategy.BUTTON_TEXT,

        # Labels of the poll duration choices
        "duration_labels": {1: "1 day", 3: "3 days", 7: "7 days"},
    },
}

DEFAULT_VERSION = "19"

SUPPORTED_POLL_DURATIONS = (1, 3, 7)


def _version_key(version: Optional[str]) -> str:
    if not version or version == "unknown":
        return DEFAULT_VERSION
    major = version.split('.')[0]
    if major in LOCATOR_VERSIONS:
        return major
    logger.warning(f"No locator table for YouTube {version}, using v{DEFAULT_VERSION}")
    return DEFAULT_VERSION


def get_locator_table(version: Optional[str] = None) -> Dict[str, Any]:
    """Get a copy of the locator table for a YouTube version.

    Args:
        version: App version string (e.g. "19.09.37"); None for the default.

    Returns:
        Dict of step id -> (LocatorStrategy, value) plus marker lists.
    """
    return copy.deepcopy(LOCATOR_VERSIONS[_version_key(version)])


def _parse_strategy(key: str, raw: Any) -> LocatorStrategy:
    try:
        return LocatorStrategy(raw)
    except ValueError:
        valid = ', '.join(s.value for s in LocatorStrategy)
        raise ValueError(f"Locator '{key}' has unknown strategy {raw!r} (valid: {valid})")


def _parse_locator(step_id: str, raw: Any) -> Tuple[LocatorStrategy, str]:
    # Accepts LocatorStrategy members as well as their string values
    if isinstance(raw, dict):
        strategy, value = raw.get('strategy'), raw.get('value')
    elif isinstance(raw, (list, tuple)) and len(raw) == 2:
        strategy, value = raw
    else:
        raise ValueError(f"Locator '{step_id}' must be {{strategy, value}} or [strategy, value]")
    return _parse_strategy(step_id, strategy), str(value)


def load_locator_table(path: str, version: Optional[str] = None) -> Dict[str, Any]:
    """Load a locator table override from JSON, merged over the built-in table.

    Expected format:
        {
          "version": "20",                       (optional, picks the base table)
          "locators": {
            "set_caption": {"strategy": "by-input-hint", "value": "Add a caption"}
          },
          "success_markers": ["Short published"],   (optional, replaces list)
          "marker_strategy": "by-text-contains",    (optional)
          "duration_labels": {"1": "24 hours"}      (optional, merged)
        }

    Args:
        path: JSON file path.
        version: Base table version when the file doesn't name one.

    Returns:
        Merged locator table.

    Raises:
        ValueError: If an entry is malformed.
    """
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    table = get_locator_table(data.get('version', version))
    for step_id, raw in (data.get('locators') or {}).items():
        table[step_id] = _parse_locator(step_id, raw)
    for key in ('success_markers', 'progress_markers', 'result_buttons'):
        if key in data:
            table[key] = [str(v) for v in data[key]]
    for key in ('marker_strategy', 'result_button_strategy'):
        if key in data:
            table[key] = _parse_strategy(key, data[key])
    for days, label in (data.get('duration_labels') or {}).items():
        table['duration_labels'][int(days)] = str(label)

    logger.info(f"Loaded locator overrides from {path}")
    return table


# =============================================================================
# Upload Script
# =============================================================================

# (step id, action, settle ms, extra fields) in execution order
_SCRIPT: List[Tuple[str, StepAction, int, Dict[str, Any]]] = [
    ("activate_app", StepAction.ACTIVATE_APP, 3000, {'value': '{app_package}'}),
    ("open_create", StepAction.TAP, 2000, {}),
    ("create_short", StepAction.TAP, 2000, {}),
    ("add_media", StepAction.TAP, 2000, {}),
    ("push_video", StepAction.PUSH_FILE, 1000, {'value': '{device_video_path}'}),
    ("open_browser", StepAction.TAP, 2000, {}),
    ("open_downloads", StepAction.TAP, 2000, {}),
    ("select_video", StepAction.TAP, 3000, {}),
    ("await_processing", StepAction.WAIT, 5000, {'wait_timeout_s': 30.0}),
    ("advance", StepAction.TAP, 3000, {}),
    ("set_caption", StepAction.SET_TEXT, 1000, {'text': '{caption}'}),
    ("reveal_poll", StepAction.SCROLL, 1000, {}),
    ("open_poll", StepAction.TAP, 2000, {}),
    ("set_poll_question", StepAction.SET_TEXT, 1000, {'text': '{question}', 'when': 'question'}),
    ("set_poll_option_1", StepAction.SET_TEXT, 1000, {'text': '{option_1}'}),
    ("set_poll_option_2", StepAction.SET_TEXT, 1000, {'text': '{option_2}'}),
    ("open_poll_duration", StepAction.TAP, 1000, {}),
    ("select_poll_duration", StepAction.TAP, 1000, {}),
    ("confirm_poll", StepAction.TAP, 2000, {}),
    ("reveal_upload", StepAction.SCROLL, 1000, {}),
    ("submit", StepAction.TAP, 0, {}),
]

# Actions that need an entry in the locator table
_LOCATED_ACTIONS = (StepAction.TAP, StepAction.SET_TEXT)


def build_upload_script(table: Dict[str, Any] = None) -> Tuple[UploadStep, ...]:
    """Build the ordered upload script from a locator table.

    Args:
        table: Locator table (default: built-in table for DEFAULT_VERSION).

    Returns:
        Tuple of UploadStep in execution order.

    Raises:
        ValueError: If a step that needs a locator has none in the table.
    """
    table = table if table is not None else get_locator_table()
    steps = []
    for step_id, action, settle_ms, extra in _SCRIPT:
        fields = dict(extra)
        locator = table.get(step_id)
        if locator is not None:
            fields['strategy'], fields['value'] = _parse_locator(step_id, locator)
        elif action in _LOCATED_ACTIONS:
            raise ValueError(f"Locator table has no entry for step '{step_id}'")
        steps.append(UploadStep(id=step_id, action=action, settle_delay_ms=settle_ms, **fields))
    return tuple(steps)


def duration_label(days: int, table: Dict[str, Any] = None) -> str:
    """On-screen label for a poll duration, falling back to the configured default."""
    labels = (table or LOCATOR_VERSIONS[DEFAULT_VERSION])['duration_labels']
    if days in labels:
        return labels[days]
    fallback = Config.DEFAULT_POLL_DURATION_DAYS if Config.DEFAULT_POLL_DURATION_DAYS in labels else 7
    return labels[fallback]
