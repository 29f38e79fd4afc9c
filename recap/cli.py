#!/usr/bin/env python3
"""
Kizu Recap command line runner

Renders an ordered list of photos into a WebM recap with fade transitions
and looping background music. Optionally uploads the result to the recap
API for a family.

Usage:
    kizu-recap photo1.jpg photo2.jpg -o recap.webm
    kizu-recap https://.../a.jpg https://.../b.jpg --duration 2000 --fps 24
    kizu-recap *.jpg --no-music --api-url http://localhost:8000 \\
        --family-id <uuid> --token <jwt>
"""

import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from recap.config import settings
from recap.exceptions import RecapError
from recap.services import RecapOptions, RecapPipeline, RecapUploadClient

logger = logging.getLogger("recap.cli")


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_options(args: argparse.Namespace) -> RecapOptions:
    last_reported = {"percent": -1}

    def report(percent: int) -> None:
        # Progress ticks once per photo; log each distinct value
        if percent != last_reported["percent"]:
            last_reported["percent"] = percent
            logger.info(f"Progress: {percent}%")

    return RecapOptions(
        photos=args.photos,
        duration=args.duration,
        width=args.width,
        height=args.height,
        fps=args.fps,
        fade_in_duration=args.fade_in,
        fade_out_duration=args.fade_out,
        music_url=None if args.no_music else args.music,
        on_progress=report,
    )


async def run(args: argparse.Namespace) -> int:
    """Render (and optionally upload) one recap. Returns the exit code."""
    pipeline = RecapPipeline(build_options(args), timeout_seconds=args.timeout)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, pipeline.cancel)
        handles_sigint = True
    except (NotImplementedError, RuntimeError):
        # Not available on Windows; Ctrl+C then aborts without cleanup logging
        handles_sigint = False

    logger.info("=" * 60)
    logger.info(f"Kizu Recap - {len(args.photos)} photos -> {args.output}")
    logger.info(f"{args.width}x{args.height} @ {args.fps}fps, {args.duration}ms per photo")
    logger.info("=" * 60)

    try:
        result = await pipeline.run()
    except RecapError as e:
        logger.error(e.message)
        if e.suggested_fix:
            logger.error(f"Suggestion: {e.suggested_fix}")
        return 1
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)

    try:
        output = Path(args.output)
        output.write_bytes(result.buffer)
        logger.info(
            f"Wrote {output} ({len(result.buffer)} bytes, "
            f"{result.total_duration_ms / 1000:.1f}s, {result.mime_type})"
        )

        if args.api_url:
            return await upload(args, result.buffer, result.mime_type)
        return 0
    finally:
        result.release()


async def upload(args: argparse.Namespace, video_bytes: bytes, mime_type: str) -> int:
    if not args.family_id or not args.token:
        logger.error("--family-id and --token are required with --api-url")
        return 2

    client = RecapUploadClient(args.api_url, args.token)
    outcome = await client.upload(args.family_id, args.photos, video_bytes, mime_type)
    if not outcome.ok:
        logger.error(f"Upload failed: {outcome.error}")
        return 1

    logger.info(f"Uploaded: {outcome.video_url}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kizu-recap",
        description="Kizu Recap video generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    kizu-recap a.jpg b.jpg c.jpg -o recap.webm
    kizu-recap *.jpg --duration 2000 --fade-in 0.2 --music song.mp3

Requirements:
    - FFmpeg installed and available in PATH (with libvpx for WebM)
        """
    )

    parser.add_argument(
        "photos",
        nargs="+",
        help="Photo URLs or file paths, in display order"
    )
    parser.add_argument(
        "-o", "--output",
        default="recap.webm",
        help="Output file (default: recap.webm)"
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=settings.recap_photo_duration_ms,
        help=f"Milliseconds per photo (default: {settings.recap_photo_duration_ms})"
    )
    parser.add_argument("--width", type=int, default=settings.recap_width)
    parser.add_argument("--height", type=int, default=settings.recap_height)
    parser.add_argument("--fps", type=int, default=settings.recap_fps)
    parser.add_argument(
        "--fade-in",
        type=float,
        default=settings.recap_fade_in,
        help="Fade-in as a fraction of each photo's duration"
    )
    parser.add_argument(
        "--fade-out",
        type=float,
        default=settings.recap_fade_out,
        help="Fade-out as a fraction of each photo's duration"
    )
    parser.add_argument(
        "--music",
        default=settings.recap_music_url,
        help="Background music URL or path, looped for the whole video"
    )
    parser.add_argument(
        "--no-music",
        action="store_true",
        help="Render without background music"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.recap_timeout_seconds,
        help=f"Give up after this many seconds (default: {settings.recap_timeout_seconds:.0f})"
    )
    parser.add_argument("--api-url", default=None, help="Recap API to upload the result to")
    parser.add_argument("--family-id", default=None)
    parser.add_argument("--token", default=None, help="Bearer token for the recap API")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(debug=args.debug)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
