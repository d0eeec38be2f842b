"""Huddle: room coordination and signaling backend for small video meetings."""

__version__ = "1.0.0"
