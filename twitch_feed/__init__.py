"""Personalised Twitch feed API: followed channels, live streams and VODs."""

__version__ = "1.0.0"
