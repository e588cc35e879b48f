"""Platform poster factory and exports.

Usage:
    from posters import get_poster, PostResult

    poster = get_poster('youtube_shorts', server_options={'port': 4723})
    url = poster.publish('/path/to/video.mp4', 'My caption',
                         {'options': ['Left door', 'Right door'], 'duration_days': 7})
"""
from .base_poster import BasePoster, PostResult, ResolvedVia, UploadResult

__all__ = ['BasePoster', 'PostResult', 'ResolvedVia', 'UploadResult', 'get_poster']


def get_poster(platform: str, **kwargs) -> BasePoster:
    """Factory function to get platform-specific poster.

    Args:
        platform: Platform identifier ('youtube_shorts').
        **kwargs: Passed to the poster constructor.

    Returns:
        BasePoster implementation for the specified platform.

    Raises:
        ValueError: If platform is not supported.
    """
    platform_lower = platform.lower().strip()

    if platform_lower in ("youtube_shorts", "youtube"):
        from .youtube_shorts_poster import YouTubeShortsPoster
        return YouTubeShortsPoster(**kwargs)

    raise ValueError(
        f"Unsupported platform: '{platform}'. "
        f"Supported platforms: youtube_shorts"
    )
