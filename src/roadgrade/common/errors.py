"""
Exception types raised by roadgrade.

Only invalid input shapes, invalid configuration and cancellation are fatal.
Everything else downgrades to "leave this element unmodified" plus a log line.
"""


class RoadgradeError(Exception):
    """Base class for all roadgrade errors."""


class InputShapeError(RoadgradeError, ValueError):
    """Raster or network is malformed or the two do not share a coordinate system."""


class ConfigError(RoadgradeError, ValueError):
    """A configuration value is out of range."""


class HarmonizationCancelled(RoadgradeError):
    """The caller asked to stop between pipeline stages."""
