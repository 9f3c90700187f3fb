"""
M3U Playlist Generation for ReelHost
------------------------------------
"""

import posixpath
from typing import Iterable
from urllib.parse import quote

PLAYLIST_MIMETYPE = "application/x-mpegurl"
PLAYLIST_TITLE = "Media Files"


def playlist_base_url(username: str, password: str, host: str) -> str:
    """Files URL prefix with the credentials embedded as userinfo"""
    return f"https://{quote(username, safe='')}:{quote(password, safe='')}@{host}/files/"


def generate_m3u(base_url: str, media_files: Iterable[str]) -> str:
    """
    Render an extended M3U playlist.

    Entries keep the order of media_files; each gets an #EXTINF line
    titled with the file's base name followed by base_url + path.
    """
    lines = ["#EXTM3U", f"#PLAYLIST:{PLAYLIST_TITLE}"]
    for media_file in media_files:
        lines.append(f"#EXTINF:0,{posixpath.basename(media_file)}")
        lines.append(base_url + media_file)
    return "\n".join(lines) + "\n"
