"""Autonomous vehicle fleet service and car simulator."""

__version__ = "0.1.0"