"""Display helpers for thumbnails, view counts and VOD durations."""

import re

# Helix durations look like "3h2m1s", "12m5s" or "45s"
_DURATION_RE = re.compile(r"^(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?$")

# One pass over every size placeholder Twitch uses in thumbnail templates:
#   {width}x{height}   live stream thumbnails
#   %{width}x%{height} VOD thumbnails
#   %640x%360          VOD thumbnails already sized by Twitch
# plus standalone {width} / {height}. Tokens without "{" or "%" are literal.
_THUMBNAIL_TOKEN_RE = re.compile(
    r"(?P<size>%?(?:\{width\}|\d+)x%?(?:\{height\}|\d+))"
    r"|(?P<width>%?\{width\})"
    r"|(?P<height>%?\{height\})"
)


def get_thumbnail_url(url: str, width: int = 640, height: int = 360) -> str:
    """Resolve the size placeholders of a Twitch thumbnail URL."""

    def _replace(match: re.Match[str]) -> str:
        if match.group("width"):
            return str(width)
        if match.group("height"):
            return str(height)
        token = match.group("size")
        if "%" not in token and "{" not in token:
            return token
        return f"{width}x{height}"

    return _THUMBNAIL_TOKEN_RE.sub(_replace, url)


def format_view_count(count: int) -> str:
    """999 -> "999", 1500 -> "1.5K", 2_300_000 -> "2.3M"."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def parse_duration(duration: str) -> tuple[int, int, int] | None:
    """Split a Helix duration string into (hours, minutes, seconds)."""
    m = _DURATION_RE.match(duration)
    if not m or not any(m.groups()):
        return None
    return int(m.group(1) or 0), int(m.group(2) or 0), int(m.group(3) or 0)


def format_duration(duration: str) -> str:
    """Render "1h2m3s" as "1:02:03" and "4m5s" as "4:05".

    Unparseable input is returned unchanged.
    """
    parts = parse_duration(duration)
    if parts is None:
        return duration
    hours, minutes, seconds = parts
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"
