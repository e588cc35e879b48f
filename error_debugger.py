"""
Error Debugger with Screenshots.

Captures the device state when a publish run fails:
- Full screenshot
- Complete error message (no truncation) and stack trace
- Page source XML at the time of the error
- Phase that was running and run context

All data saved to error_logs/<label>_<timestamp>/.
"""

import os
import json
import logging
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorDebugger:
    """
    Error capture for debugging publish failures.

    Usage:
        debugger = ErrorDebugger(label="youtube_shorts")

        try:
            # ... upload script ...
        except PublishError as e:
            debugger.capture_error(e, session=appium_session, phase="upload")
            raise
    """

    def __init__(self, label: str, output_dir: str = "error_logs"):
        """
        Args:
            label: Run label (used in the directory name)
            output_dir: Parent directory for capture directories
        """
        self.label = label
        self.output_dir = output_dir
        self.run_dir = os.path.join(output_dir, f"{label}_{datetime.now():%Y%m%d_%H%M%S}")
        self.index_file = os.path.join(self.run_dir, "errors.jsonl")
        self.captures = 0

    def capture_error(
        self,
        error: Exception,
        session=None,
        phase: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Save error details and, if a session is open, what the device showed.

        Args:
            error: The exception being reported
            session: AppiumSession to pull a screenshot and page source from
            phase: Publish phase that failed ('connect', 'upload', 'completion', 'result')
            context: Extra key/values stored with the record

        Returns:
            Path to the JSON record for this capture
        """
        os.makedirs(self.run_dir, exist_ok=True)
        self.captures += 1
        capture_id = f"error_{self.captures:03d}"

        record = {
            "error_id": capture_id,
            "timestamp": datetime.now().isoformat(),
            "label": self.label,
            "phase": phase or "unknown",
            "error_class": type(error).__name__,
            "error_message": str(error),
            "error_repr": repr(error),
            "stack_trace": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            "context": context or {},
        }
        record.update(self._save_device_state(session, capture_id))

        return self._write_record(capture_id, record)

    def _save_device_state(self, session, capture_id: str) -> Dict[str, Optional[str]]:
        files = {"screenshot_file": None, "page_source_file": None}
        if session is None or not session.is_open:
            return files

        screenshot = os.path.join(self.run_dir, f"{capture_id}_screenshot.png")
        if session.save_screenshot(screenshot):
            files["screenshot_file"] = screenshot
            logger.info(f"[DEBUG] Screenshot saved: {screenshot}")

        xml = session.page_source()
        if xml:
            source_file = os.path.join(self.run_dir, f"{capture_id}_page_source.xml")
            with open(source_file, "w", encoding="utf-8") as f:
                f.write(xml)
            files["page_source_file"] = source_file
        return files

    def _write_record(self, capture_id: str, record: Dict[str, Any]) -> str:
        with open(self.index_file, "a", encoding="utf-8") as index:
            index.write(json.dumps(record, ensure_ascii=False) + "\n")

        path = os.path.join(self.run_dir, f"{capture_id}.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2, ensure_ascii=False)

        logger.info(f"[DEBUG] Error logged: {path}")
        return path
