"""Period-based financial settlement engine for a vehicle fleet."""

__version__ = "0.1.0"
