"""Hero Cycle mission resolution engine and cycle clock."""

__version__ = "0.1.0"
