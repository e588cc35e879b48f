"""Base poster interface and shared result types."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class ResolvedVia(Enum):
    """How a published reference was obtained."""
    OBSERVED = "observed"        # Read from the UI
    PLACEHOLDER = "placeholder"  # Constructed; the UI doesn't expose the real one


@dataclass(frozen=True)
class UploadResult:
    """Reference to published content, produced once per successful run."""
    url: str
    resolved_via: ResolvedVia = ResolvedVia.PLACEHOLDER


@dataclass
class PostResult:
    """Outcome of one post() call, success or not.

    Attributes:
        success: True if the Short was submitted and confirmed.
        url: Published reference (placeholder unless resolved_via says otherwise).
        resolved_via: How url was obtained.
        error: "<ErrorClass>: <message>" on failure.
        error_type: Exception class name (e.g. 'ElementNotFoundError').
        error_category: 'validation', 'infrastructure', 'ui' or 'timeout'.
        retryable: False when retrying could not help or could post twice.
        platform: Platform identifier (e.g. 'youtube_shorts').
        duration_seconds: Wall time of the attempt, validation included.
        screenshot_path: Path to error capture if one was saved.
        timestamp: When the result was created (ISO 8601).
    """
    success: bool
    url: Optional[str] = None
    resolved_via: Optional[ResolvedVia] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_category: Optional[str] = None
    retryable: bool = True
    platform: str = ""
    duration_seconds: float = 0.0
    screenshot_path: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


class BasePoster(ABC):
    """Interface shared by posters; only YouTube Shorts is implemented.

    Lifecycle:
        1. Create poster with get_poster(platform, **kwargs)
        2. Call connect() to make sure the automation server and session are up
        3. Call post(video_path, caption, poll) to execute posting
        4. cleanup() closes the session and stops a server we started

    Example:
        poster = get_poster('youtube_shorts')
        try:
            if poster.connect():
                result = poster.post('/path/to/video.mp4', 'Check this out!', poll)
                print(result.url if result.success else result.error)
        finally:
            poster.cleanup()
    """

    @property
    @abstractmethod
    def platform(self) -> str:
        """Return platform identifier (e.g., 'youtube_shorts')."""
        pass

    @abstractmethod
    def connect(self) -> bool:
        """Establish the automation server and session.

        Returns:
            True once a session is open, False if server or session failed.
        """
        pass

    @abstractmethod
    def post(self, video_path: str, caption: str, poll=None) -> PostResult:
        """Publish one video. Never raises for publishing failures.

        Args:
            video_path: Local video file.
            caption: Caption for the Short.
            poll: Poll to attach (platform-specific).

        Returns:
            PostResult; on failure error, error_category and retryable are set.
        """
        pass

    @abstractmethod
    def cleanup(self):
        """Release resources: close the session, stop any server we started."""
        pass
