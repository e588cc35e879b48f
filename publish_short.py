"""
Publish a video to YouTube Shorts with a poll.

Usage:
    publish-short --video movie.mp4 --caption "Which door?" --option "Left" --option "Right"
    publish-short --caption "Episode 3" --poll-file poll_results/latest_prompt.json
    publish-short --caption "Episode 3"          # latest final_movie_*.mp4, latest poll

Exit codes: 0 published, 1 failed, 2 submitted but not confirmed in time.
"""
import os
import sys
import glob
import json
import logging
import argparse
from typing import List, Optional

from config import Config
from poll_spec import PollSpec, load_poll_file
from posters import get_poster
from publish_errors import PublishError, PublishValidationError, UploadTimeoutError
from upload_steps import load_locator_table

logger = logging.getLogger("publish_short")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNCONFIRMED = 2

# Used when no poll is given and the latest poll file can't be read
FALLBACK_POLL = {'question': 'What happens next?', 'options': ['Yes', 'Maybe']}


def find_latest_video(directory: str = '.') -> Optional[str]:
    """Most recent final_movie_<timestamp>.mp4 in directory, by name."""
    candidates = sorted(glob.glob(os.path.join(directory, 'final_movie_*.mp4')))
    return candidates[-1] if candidates else None


def resolve_poll(args) -> PollSpec:
    """Poll from --option, --poll-file, --story-file, else the latest poll file."""
    if args.option:
        return PollSpec.build(args.option, args.question, args.duration)

    if args.poll_file:
        return load_poll_file(args.poll_file)

    if args.story_file:
        with open(args.story_file, 'r', encoding='utf-8') as f:
            return PollSpec.from_story(json.load(f))

    try:
        return load_poll_file(Config.LATEST_POLL_FILE)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read poll options from {Config.LATEST_POLL_FILE} ({e}), using defaults")
        return PollSpec.from_mapping(FALLBACK_POLL)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Publish a video to YouTube Shorts with a poll')
    parser.add_argument('--video', help='Video file (default: latest final_movie_*.mp4 here)')
    parser.add_argument('--caption', required=True, help='Caption for the Short')
    parser.add_argument('--option', action='append', help='Poll option (give twice)')
    parser.add_argument('--question', help='Poll question')
    parser.add_argument('--duration', type=int, help='Poll duration in days: 1, 3 or 7')
    parser.add_argument('--poll-file', help='JSON file with {question, choices|options}')
    parser.add_argument('--story-file', help='Story JSON; the poll uses its first two choices')
    parser.add_argument('--locators', help='JSON locator table override')
    parser.add_argument('--host', help=f'Appium host (default {Config.APPIUM_HOST})')
    parser.add_argument('--port', type=int, help=f'Appium port (default {Config.APPIUM_PORT})')
    parser.add_argument('--show-logs', action='store_true', help='Forward Appium server output')
    parser.add_argument('--keep-server', action='store_true',
                        help='Leave a server we started running afterwards')
    parser.add_argument('--timeout', type=float, default=Config.UPLOAD_TIMEOUT_S,
                        help='Seconds to wait for upload confirmation')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def main(argv: List[str] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
    )

    try:
        video_path = args.video or find_latest_video()
        if not video_path:
            raise PublishValidationError('No video file found. Please generate a video first.')
        logger.info(f"Using video file: {video_path}")

        poll = resolve_poll(args)
        locator_table = load_locator_table(args.locators) if args.locators else None

        poster = get_poster(
            'youtube_shorts',
            server_options={
                'host': args.host,
                'port': args.port,
                'show_logs': args.show_logs or None,
            },
            locator_table=locator_table,
            upload_timeout_s=args.timeout,
            keep_server_running=args.keep_server,
        )
        url = poster.publish(video_path, args.caption, poll)

    except UploadTimeoutError as e:
        logger.warning(f"{e}. The Short was submitted and is probably processing; check your channel.")
        return EXIT_UNCONFIRMED
    except (PublishError, ValueError, OSError) as e:
        logger.error(f"Publishing failed: {e}")
        return EXIT_FAILED
    except KeyboardInterrupt:
        logger.error("Interrupted by user")
        return EXIT_FAILED

    print(f"YouTube Shorts URL: {url}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
