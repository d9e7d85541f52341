"""wksl: wake up or suspend a named machine."""

__version__ = "0.2.0"
