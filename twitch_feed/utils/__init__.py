from .formatting import format_duration, format_view_count, get_thumbnail_url

__all__ = ["format_duration", "format_view_count", "get_thumbnail_url"]
