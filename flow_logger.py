"""
Flow Logger - Captures every step of the upload script for later analysis.

One JSONL file per publish run. When the YouTube app changes its wording,
these logs show exactly which step stopped matching and how long each
step took before it did.
"""
import os
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class FlowLogger:
    """Appends one JSON object per event to <log_dir>/<label>_<timestamp>.jsonl."""

    def __init__(self, label: str, log_dir: str = "flow_logs"):
        """
        Args:
            label: Short name for the run (used in the file name).
            log_dir: Directory for the log files, created if missing.
        """
        self.label = label
        self.log_dir = log_dir
        self.started_at = datetime.now()
        self.step_count = 0

        os.makedirs(log_dir, exist_ok=True)
        self.log_file = os.path.join(
            log_dir, f"{label}_{self.started_at.strftime('%Y%m%d_%H%M%S')}.jsonl"
        )
        self._file = open(self.log_file, 'a', encoding='utf-8')

        self._emit('session_start', label=label, timestamp=self.started_at.isoformat())

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def log_step(
        self,
        step_id: str,
        action: str,
        locator: Optional[Dict[str, Any]] = None,
        elapsed_ms: float = 0.0,
        result: str = "ok",
        detail: Optional[str] = None,
    ):
        """Record one step of the upload script.

        Args:
            step_id: Script step identifier.
            action: Action performed (tap, set-text, ...).
            locator: Resolved locator {strategy, value}, if any.
            elapsed_ms: Time spent on the step, settle delay excluded.
            result: ok, skipped, timeout.
            detail: Free-form extra info (e.g. the matched completion marker).
        """
        self.step_count += 1
        fields = dict(step_id=step_id, action=action, locator=locator,
                      elapsed_ms=round(elapsed_ms, 1), result=result)
        if detail:
            fields['detail'] = detail
        self._emit('step', **fields)

    def log_error(self, error_type: str, error_message: str, step_id: Optional[str] = None):
        self._emit('error', step_id=step_id, error_type=error_type, error_message=error_message)

    def log_success(self, url: Optional[str] = None):
        self._emit_outcome('success', url=url)

    def log_failure(self, reason: str):
        self._emit_outcome('failure', reason=reason)

    def _emit_outcome(self, event: str, **fields):
        elapsed = (datetime.now() - self.started_at).total_seconds()
        self._emit(event, total_steps=self.step_count, duration_seconds=elapsed, **fields)

    def _emit(self, event: str, **fields):
        entry = {'event': event, 'timestamp': datetime.now().isoformat(), 'step': self.step_count}
        entry.update(fields)
        try:
            self._file.write(json.dumps(entry, ensure_ascii=False) + '\n')
            self._file.flush()
        except (OSError, ValueError) as e:
            # ValueError: written after close()
            logger.warning(f"Flow log write failed ({self.log_file}): {e}")

    def close(self):
        if not self._file.closed:
            self._file.close()
