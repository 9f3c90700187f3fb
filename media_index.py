"""
Media Indexing for ReelHost
---------------------------
Walks the served directory and collects the audio and video files that
are exposed through the playlist and the /files/ route.
"""

import logging
import os
from typing import Iterator, List

# Common audio and video container extensions
MEDIA_EXTENSIONS = frozenset(
    {
        ".webm",
        ".mkv",
        ".ogv",
        ".ogg",
        ".avi",
        ".mov",
        ".wmv",
        ".mp4",
        ".m4p",
        ".m4v",
        ".mpg",
        ".mpeg",
        ".flv",
        ".aac",
        ".aiff",
        ".flac",
        ".m4a",
        ".mp3",
        ".oga",
        ".opus",
        ".wav",
    }
)

logger = logging.getLogger(__name__)


def is_media_file(name: str) -> bool:
    """Check whether a file name carries an allowed media extension"""
    return os.path.splitext(name)[1].lower() in MEDIA_EXTENSIONS


def is_url_safe(name: str) -> bool:
    """Check whether a file name decoded cleanly and can be encoded as UTF-8"""
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def iter_media_files(root_path: str) -> Iterator[str]:
    """
    Yield media file paths beneath root_path, relative to it.

    The walk is depth-first and visits each directory's entries in sorted
    name order, so the output is stable for an unchanged tree. Symbolic
    links are never followed, which keeps the walk inside root_path.
    Dot-prefixed files are skipped and dot-prefixed directories are pruned
    along with everything below them.
    Names that are not valid UTF-8 cannot be put in a URL; they are skipped
    (or pruned, for directories) with a warning.

    Paths use "/" as separator regardless of platform, since they are
    embedded in URLs.

    Raises:
        OSError: if a directory cannot be listed
    """
    yield from _walk(root_path, "")


def _walk(directory: str, prefix: str) -> Iterator[str]:
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda entry: entry.name)

    for entry in entries:
        if entry.name.startswith("."):
            continue
        if not is_url_safe(entry.name):
            logger.warning(
                f"Skipping entry whose name is not valid UTF-8: {os.fsencode(entry.path)!r}"
            )
            continue

        relative = f"{prefix}{entry.name}"
        if entry.is_dir(follow_symlinks=False):
            yield from _walk(entry.path, relative + "/")
        elif entry.is_file(follow_symlinks=False) and is_media_file(entry.name):
            yield relative


def list_media_files(root_path: str) -> List[str]:
    """Collect the full ordered media list for root_path"""
    return list(iter_media_files(root_path))
