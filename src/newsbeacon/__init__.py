"""NewsBeacon: economic-calendar news alerts for Discord channels."""

__version__ = "1.0.0"
