"""FLEXR core: training progress analytics and watch/phone workout sync."""

__version__ = "0.1.0"
