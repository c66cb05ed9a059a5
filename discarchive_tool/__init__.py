"""Disc archive manager: convert disc images to CHD and keep per-title README manifests."""

__version__ = "1.0.0"
