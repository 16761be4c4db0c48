"""Vendor treadmill: keep a vendored Go dependency rolling on a never-merged branch."""

__version__ = "0.3.0"
